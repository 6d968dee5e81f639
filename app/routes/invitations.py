"""API Routes - Public invitation verification and acceptance"""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.account import AccountInvite, AccountMember
from app.models.user import User, UserRole
from app.schemas.team import InviteAccept
from app.utils.auth import get_password_hash

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invitations", tags=["Invitations"])


def _load_valid_invite(db: Session, token: str) -> AccountInvite:
    """Invitation that can still be accepted, or the HTTP error explaining why not"""
    invite = db.query(AccountInvite).filter(AccountInvite.token == token).first()
    if not invite:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invalid invitation link. This invitation may have already been used or does not exist.",
        )

    if invite.is_expired():
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail="This invitation has expired. Please request a new invitation from your team administrator.",
        )

    existing = db.query(User).filter(User.email == invite.email).first()
    if existing:
        if any(m.account_id == invite.account_id for m in existing.memberships):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="This invitation has already been accepted. You are already a member of this team.",
            )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists. Please login to accept the invitation or contact support.",
        )
    return invite


@router.get("/verify")
async def verify_invitation(token: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    invite = _load_valid_invite(db, token)
    inviter = invite.inviter or invite.account.owner
    return {
        "invitation": {
            "email": invite.email,
            "role": invite.role.value,
            "accountName": invite.account.name,
            "invitedByName": (inviter.name if inviter else None) or "Account Owner",
            "expiresAt": invite.expires_at,
        }
    }


@router.post("/accept", status_code=status.HTTP_201_CREATED)
async def accept_invitation(payload: InviteAccept, db: Session = Depends(get_db)):
    """Create the invited user and join them to the account in one transaction"""
    invite = _load_valid_invite(db, payload.token)
    account_id = invite.account_id

    try:
        user = User(
            email=invite.email,
            name=payload.name.strip(),
            hashed_password=get_password_hash(payload.password),
            role=UserRole.USER,
            is_active=True,
            email_verified_at=datetime.utcnow(),
        )
        db.add(user)
        db.flush()
        db.add(AccountMember(
            account_id=account_id,
            user_id=user.id,
            role=invite.role,
            permissions=list(invite.permissions or []),
            invited_by=invite.invited_by,
            is_active=True,
        ))
        db.delete(invite)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(user)
    logger.info(f"User {user.id} joined account {account_id} by invitation")
    return {
        "message": "Invitation accepted successfully",
        "user": {"id": user.id, "email": user.email, "name": user.name},
    }
