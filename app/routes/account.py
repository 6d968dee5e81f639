"""API Routes - Account settings"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.plans import get_plan_limits, remaining_team_slots
from app.database import get_db
from app.schemas.account import AccountResponse, AccountUpdate, Usage
from app.services.account_service import active_member_count
from app.utils.auth import AccountContext, get_account_context

router = APIRouter(prefix="/api/account", tags=["Account"])

@router.get("")
async def get_account(
    ctx: AccountContext = Depends(get_account_context()),
    db: Session = Depends(get_db),
):
    """Account details, plan limits and usage"""
    account = ctx.account
    members = active_member_count(db, account.id)
    return {
        "account": AccountResponse.model_validate(account),
        "planLimits": get_plan_limits(account.plan).to_dict(),
        "usage": Usage(
            scans_used=account.scans_used_this_month,
            scan_limit=account.scan_limit_per_month,
            reset_date=account.scan_limit_reset_at,
        ),
        "team": {"members": members, "remainingSlots": remaining_team_slots(account.plan, members)},
        "role": ctx.role,
        "permissions": ctx.permissions,
    }

@router.patch("", response_model=AccountResponse)
async def update_account(
    payload: AccountUpdate,
    ctx: AccountContext = Depends(get_account_context(require_owner=True)),
    db: Session = Depends(get_db),
):
    """Owner-only: rename the workspace and set billing details"""
    account = ctx.account
    account.name = payload.name
    account.business_name = payload.business_name
    account.billing_email = payload.billing_email
    db.commit()
    db.refresh(account)
    return account
