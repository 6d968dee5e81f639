"""API Routes - Team members and invitations (account owner only)"""
import logging
import uuid
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.config import settings
from app.core.plans import can_add_team_member, get_plan_limits
from app.database import get_db
from app.models.account import Account, AccountInvite, AccountMember
from app.models.user import User
from app.schemas.team import InviteCreate, InviteResponse, MemberResponse, MemberUpdate
from app.services.account_service import active_member_count, pending_invite_count
from app.services.email_service import email_service
from app.utils.auth import AccountContext, get_account_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/team", tags=["Team"])

INVITE_TTL = timedelta(days=7)

owner_context = get_account_context(require_owner=True)


def _member_response(member: AccountMember) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        user_id=member.user_id,
        name=member.user.name,
        email=member.user.email,
        role=member.role,
        permissions=member.permissions or [],
        is_active=member.is_active,
        joined_at=member.joined_at,
    )


def _invite_response(invite: AccountInvite) -> InviteResponse:
    return InviteResponse(
        id=invite.id,
        email=invite.email,
        role=invite.role,
        permissions=invite.permissions or [],
        invited_by=invite.invited_by,
        invited_by_name=invite.inviter.name if invite.inviter else None,
        expires_at=invite.expires_at,
        created_at=invite.created_at,
    )


def _get_member(db: Session, member_id: int, ctx: AccountContext) -> AccountMember:
    member = db.query(AccountMember).filter(AccountMember.id == member_id).first()
    if not member or member.account_id != ctx.account_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    return member


def _get_invite(db: Session, invite_id: int, ctx: AccountContext) -> AccountInvite:
    invite = db.query(AccountInvite).filter(AccountInvite.id == invite_id).first()
    if not invite or invite.account_id != ctx.account_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found")
    return invite


def _send_invite(invite: AccountInvite, account: Account, inviter: User) -> bool:
    invite_url = f"{settings.APP_URL}/invite/accept?token={invite.token}"
    sent = email_service.send_invitation_email(
        to_email=invite.email,
        invite_url=invite_url,
        account_name=account.name,
        inviter_name=inviter.name,
        role=invite.role.value,
    )
    if not sent:
        logger.error(f"Failed to send invitation email for invite {invite.id}")
    return sent


# ── Members ───────────────────────────────────────────────────────────────────

@router.get("/members")
async def list_members(ctx: AccountContext = Depends(owner_context), db: Session = Depends(get_db)):
    members = (
        db.query(AccountMember)
        .filter(AccountMember.account_id == ctx.account_id)
        .order_by(AccountMember.joined_at.desc())
        .all()
    )
    return {"members": [_member_response(m) for m in members]}


@router.patch("/members/{member_id}", response_model=MemberResponse)
async def update_member(
    member_id: int,
    payload: MemberUpdate,
    ctx: AccountContext = Depends(owner_context),
    db: Session = Depends(get_db),
):
    """Activate or deactivate a member"""
    member = _get_member(db, member_id, ctx)
    member.is_active = payload.is_active
    db.commit()
    db.refresh(member)
    logger.info(f"Member {member.id} of account {ctx.account_id} set active={member.is_active}")
    return _member_response(member)


@router.delete("/members/{member_id}")
async def remove_member(member_id: int, ctx: AccountContext = Depends(owner_context), db: Session = Depends(get_db)):
    member = _get_member(db, member_id, ctx)
    db.delete(member)
    db.commit()
    return {"message": "Member removed successfully"}


# ── Invitations ───────────────────────────────────────────────────────────────

@router.get("/invitations")
async def list_invitations(ctx: AccountContext = Depends(owner_context), db: Session = Depends(get_db)):
    invites = (
        db.query(AccountInvite)
        .filter(AccountInvite.account_id == ctx.account_id)
        .order_by(AccountInvite.created_at.desc())
        .all()
    )
    return {"invitations": [_invite_response(i) for i in invites]}


@router.post("/invitations", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    payload: InviteCreate,
    ctx: AccountContext = Depends(owner_context),
    db: Session = Depends(get_db),
):
    """
    Invite someone to the account. Each user belongs to exactly one account,
    so registered emails cannot be invited.
    """
    account = ctx.account
    email = payload.email

    if email == ctx.user.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot invite yourself. You are already the account owner.",
        )

    limits = get_plan_limits(account.plan)
    if limits.max_team_members == 0:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Team collaboration is not available on the {limits.name} plan. "
                   f"Please upgrade to invite team members.",
        )

    members = active_member_count(db, account.id)
    pending = pending_invite_count(db, account.id)
    if not can_add_team_member(account.plan, members + pending):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You've reached the maximum of {limits.max_team_members} team members for your "
                   f"{limits.name} plan. You currently have {members} active members and "
                   f"{pending} pending invitations.",
        )

    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        if existing_user.owned_account is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="This user already owns an account and cannot be invited as a team member.",
            )
        if any(m.account_id == account.id for m in existing_user.memberships):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="This user is already a member of your account.",
            )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This email is already registered in the platform. Each user can only belong to one account.",
        )

    active_invite = (
        db.query(AccountInvite)
        .filter(
            AccountInvite.account_id == account.id,
            AccountInvite.email == email,
            AccountInvite.expires_at > datetime.utcnow(),
        )
        .first()
    )
    if active_invite:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An active invitation already exists for this email",
        )

    invite = AccountInvite(
        account_id=account.id,
        email=email,
        role=payload.role,
        permissions=[p.value for p in payload.permissions],
        token=str(uuid.uuid4()),
        invited_by=ctx.user.id,
        expires_at=datetime.utcnow() + INVITE_TTL,
    )
    db.add(invite)
    db.commit()
    db.refresh(invite)
    logger.info(f"Invitation {invite.id} created for account {account.id}")

    _send_invite(invite, account, ctx.user)
    return _invite_response(invite)


@router.delete("/invitations/{invite_id}")
async def cancel_invitation(invite_id: int, ctx: AccountContext = Depends(owner_context), db: Session = Depends(get_db)):
    invite = _get_invite(db, invite_id, ctx)
    db.delete(invite)
    db.commit()
    return {"message": "Invitation cancelled successfully"}


@router.post("/invitations/{invite_id}/resend")
async def resend_invitation(invite_id: int, ctx: AccountContext = Depends(owner_context), db: Session = Depends(get_db)):
    """Extend the invitation by another week and send it again"""
    invite = _get_invite(db, invite_id, ctx)
    invite.expires_at = datetime.utcnow() + INVITE_TTL
    db.commit()
    db.refresh(invite)

    email_sent = _send_invite(invite, ctx.account, ctx.user)
    return {"message": "Invitation resent successfully", "emailSent": email_sent, "expiresAt": invite.expires_at}
