"""Account lifecycle helpers shared by auth, billing and the admin console"""
import logging
import re
import time
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.plans import next_reset_date, scan_limit_for_plan
from app.models.account import Account, AccountInvite, AccountMember, Plan, SubscriptionStatus
from app.models.user import User

logger = logging.getLogger(__name__)


def _slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "account"


def create_account_for_user(
    db: Session,
    owner: User,
    name: Optional[str] = None,
    plan: Plan = Plan.FREE,
    is_active: bool = True,
) -> Account:
    """
    Create the workspace owned by `owner`. The caller commits.
    """
    if name is None:
        name = f"{owner.name or owner.email.split('@')[0]}'s Workspace"
        slug_base = f"{owner.email.split('@')[0]}-workspace"
    else:
        slug_base = name
    account = Account(
        name=name,
        slug=f"{_slugify(slug_base)}-{int(time.time() * 1000)}",
        owner=owner,
        plan=plan,
        subscription_status=SubscriptionStatus.ACTIVE if plan == Plan.FREE else SubscriptionStatus.INACTIVE,
        scan_limit_per_month=scan_limit_for_plan(plan),
        scans_used_this_month=0,
        scan_limit_reset_at=next_reset_date(),
        is_active=is_active,
    )
    db.add(account)
    return account


def apply_plan(
    account: Account,
    plan: Plan,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    subscription_id: Optional[str] = None,
) -> None:
    """Switch plan and derive the scan limit from it"""
    account.plan = plan
    account.subscription_status = status
    account.scan_limit_per_month = scan_limit_for_plan(plan)
    if subscription_id is not None:
        account.stripe_subscription_id = subscription_id


def downgrade_to_free(account: Account) -> None:
    apply_plan(account, Plan.FREE, SubscriptionStatus.CANCELED)
    account.stripe_subscription_id = None
    account.subscription_cancel_at = None


def reset_usage_if_due(account: Account, now: Optional[datetime] = None) -> bool:
    """Zero the monthly counter once the reset date has passed"""
    now = now or datetime.utcnow()
    if account.scan_limit_reset_at is None or account.scan_limit_reset_at <= now:
        account.scans_used_this_month = 0
        account.scan_limit_reset_at = next_reset_date(now)
        return True
    return False


def reserve_scan_quota(db: Session, account_id: int) -> bool:
    """
    Take one scan from the monthly quota in a single conditional UPDATE.

    Returns False when the account is at its limit. The caller commits.
    """
    reserved = (
        db.query(Account)
        .filter(
            Account.id == account_id,
            or_(
                Account.scan_limit_per_month.is_(None),
                Account.scans_used_this_month < Account.scan_limit_per_month,
            ),
        )
        .update(
            {Account.scans_used_this_month: Account.scans_used_this_month + 1},
            synchronize_session=False,
        )
    )
    return reserved == 1


def release_scan_quota(db: Session, account_id: int) -> None:
    """Give back a reserved scan. The caller commits."""
    (
        db.query(Account)
        .filter(Account.id == account_id, Account.scans_used_this_month > 0)
        .update(
            {Account.scans_used_this_month: Account.scans_used_this_month - 1},
            synchronize_session=False,
        )
    )


def active_member_count(db: Session, account_id: int) -> int:
    return (
        db.query(AccountMember)
        .filter(AccountMember.account_id == account_id, AccountMember.is_active == True)  # noqa: E712
        .count()
    )


def pending_invite_count(db: Session, account_id: int) -> int:
    return (
        db.query(AccountInvite)
        .filter(AccountInvite.account_id == account_id, AccountInvite.expires_at > datetime.utcnow())
        .count()
    )
