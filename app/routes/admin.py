"""API Routes - Platform admin console"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.plans import PAID_PLANS
from app.database import get_db
from app.models.account import Account, Plan, SubscriptionStatus
from app.models.payment import Payment, PaymentStatus
from app.models.regulatory_rule import SYSTEM_SETTINGS_ID, RegulatoryRule, SystemSettings
from app.models.scan import Category, Marketplace, Scan, ScanStatus
from app.models.user import User
from app.schemas.account import AccountResponse
from app.schemas.admin import (
    AdminAccountCreate, AdminAccountUpdate, AdminUserUpdate,
    RegulatoryRuleCreate, RegulatoryRuleResponse, RegulatoryRuleUpdate, SystemSettingsPayload,
)
from app.schemas.scan import ScanSummary
from app.schemas.user import UserResponse
from app.services.account_service import apply_plan, create_account_for_user
from app.tasks.scan_tasks import get_queue_stats
from app.utils.auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"], dependencies=[Depends(require_admin)])

DELUXE_MONTHLY_PRICE = 29.99


def _get_account(db: Session, account_id: int) -> Account:
    account = db.query(Account).filter(Account.id == account_id).first()
    if not account:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return account


def _account_row(account: Account) -> dict:
    return {
        **AccountResponse.model_validate(account).model_dump(by_alias=True),
        "owner": {"id": account.owner.id, "name": account.owner.name, "email": account.owner.email},
        "counts": {
            "members": len(account.members),
            "scans": len(account.scans),
            "payments": len(account.payments),
        },
    }


def _growth(current: int, previous: int) -> float:
    if previous == 0:
        return 0.0
    return round((current - previous) / previous * 100, 2)


# ── Accounts ──────────────────────────────────────────────────────────────────

@router.get("/accounts")
async def list_accounts(
    skip: int = 0,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    accounts = db.query(Account).order_by(Account.created_at.desc()).offset(skip).limit(limit).all()
    return {"accounts": [_account_row(a) for a in accounts], "total": db.query(Account).count()}


@router.get("/accounts/{account_id}")
async def get_account(account_id: int, db: Session = Depends(get_db)):
    account = _get_account(db, account_id)
    recent = (
        db.query(Scan)
        .filter(Scan.account_id == account.id)
        .order_by(Scan.created_at.desc())
        .limit(10)
        .all()
    )
    row = _account_row(account)
    row["members"] = [
        {
            "id": m.id,
            "userId": m.user_id,
            "name": m.user.name,
            "email": m.user.email,
            "role": m.role.value,
            "permissions": m.permissions or [],
            "isActive": m.is_active,
            "joinedAt": m.joined_at,
        }
        for m in account.members
    ]
    row["recentScans"] = [ScanSummary.model_validate(s) for s in recent]
    return row


@router.post("/accounts", status_code=status.HTTP_201_CREATED)
async def create_account(payload: AdminAccountCreate, db: Session = Depends(get_db)):
    """Create an account, reusing the owner's user record when the email is known"""
    email = payload.owner_email.strip().lower()
    owner = db.query(User).filter(User.email == email).first()
    if owner is not None:
        if owner.owned_account is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This user already owns an account")
        if owner.memberships:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="This user is a member of another account",
            )
    else:
        owner = User(email=email, name=payload.owner_name.strip(), is_active=True)
        db.add(owner)

    if payload.is_email_verified and owner.email_verified_at is None:
        owner.email_verified_at = datetime.utcnow()

    account = create_account_for_user(
        db, owner, name=payload.account_name.strip(), plan=payload.plan, is_active=payload.is_active,
    )
    if payload.plan in PAID_PLANS:
        account.subscription_status = SubscriptionStatus.ACTIVE
    db.commit()
    db.refresh(account)
    logger.info(f"Admin created account {account.id} ({account.plan.value}) for user {owner.id}")
    return _account_row(account)


@router.patch("/accounts/{account_id}")
async def update_account(account_id: int, payload: AdminAccountUpdate, db: Session = Depends(get_db)):
    account = _get_account(db, account_id)
    fields = payload.model_fields_set

    if payload.name is not None:
        account.name = payload.name.strip()
    if payload.plan is not None and payload.plan != account.plan:
        apply_plan(account, payload.plan, payload.subscription_status or account.subscription_status)
    if payload.subscription_status is not None:
        account.subscription_status = payload.subscription_status
    if payload.is_active is not None:
        account.is_active = payload.is_active
    # An explicit null limit means unlimited
    if "scan_limit_per_month" in fields:
        account.scan_limit_per_month = payload.scan_limit_per_month
    if payload.scans_used_this_month is not None:
        account.scans_used_this_month = payload.scans_used_this_month

    db.commit()
    db.refresh(account)
    return _account_row(account)


@router.delete("/accounts/{account_id}")
async def delete_account(account_id: int, db: Session = Depends(get_db)):
    """Delete an account with its members, invitations, scans and payments"""
    account = _get_account(db, account_id)
    db.delete(account)
    db.commit()
    logger.info(f"Admin deleted account {account_id}")
    return {"message": "Account deleted successfully"}


# ── Users ─────────────────────────────────────────────────────────────────────

@router.get("/users")
async def list_users(
    skip: int = 0,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    users = db.query(User).order_by(User.created_at.desc()).offset(skip).limit(limit).all()
    rows = []
    for user in users:
        membership = next((m for m in user.memberships if m.is_active), None)
        account = user.owned_account or (membership.account if membership else None)
        rows.append({
            **UserResponse.model_validate(user).model_dump(by_alias=True),
            "account": {
                "id": account.id,
                "name": account.name,
                "plan": account.plan.value,
                "isOwner": user.owned_account is not None,
            } if account else None,
        })
    return {"users": rows, "total": db.query(User).count()}


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    payload: AdminUserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.id == current_user.id and (payload.is_active is False or payload.role not in (None, current_user.role)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot demote or deactivate yourself")

    if payload.role is not None:
        user.role = payload.role
    if payload.is_active is not None:
        user.is_active = payload.is_active
    db.commit()
    db.refresh(user)
    return user


# ── System settings ───────────────────────────────────────────────────────────

def _settings_row(db: Session) -> SystemSettings:
    row = db.query(SystemSettings).filter(SystemSettings.id == SYSTEM_SETTINGS_ID).first()
    if row is None:
        row = SystemSettings(id=SYSTEM_SETTINGS_ID)
        db.add(row)
        db.flush()
    return row


def _settings_payload(row: SystemSettings) -> dict:
    return {
        "masterPrompt": row.master_prompt,
        "commonRules": row.common_rules,
        "usRules": row.us_rules,
        "ukRules": row.uk_rules,
        "euRules": row.eu_rules,
        "updatedAt": row.updated_at,
    }


@router.get("/settings")
async def get_system_settings(db: Session = Depends(get_db)):
    row = _settings_row(db)
    db.commit()
    return _settings_payload(row)


@router.put("/settings")
async def update_system_settings(payload: SystemSettingsPayload, db: Session = Depends(get_db)):
    """Replace the analysis prompt and rule texts used for new scans"""
    row = _settings_row(db)
    row.master_prompt = payload.master_prompt
    row.common_rules = payload.common_rules
    row.us_rules = payload.us_rules
    row.uk_rules = payload.uk_rules
    row.eu_rules = payload.eu_rules
    db.commit()
    db.refresh(row)
    logger.info("System settings updated")
    return _settings_payload(row)


# ── Regulatory rules ──────────────────────────────────────────────────────────

def _get_rule(db: Session, rule_id: int) -> RegulatoryRule:
    rule = db.query(RegulatoryRule).filter(RegulatoryRule.id == rule_id).first()
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found")
    return rule


@router.get("/rules")
async def list_rules(
    category: Optional[Category] = None,
    marketplace: Optional[Marketplace] = None,
    db: Session = Depends(get_db),
):
    query = db.query(RegulatoryRule)
    if category:
        query = query.filter(RegulatoryRule.category == category)
    if marketplace:
        query = query.filter(RegulatoryRule.marketplace == marketplace)
    rules = query.order_by(RegulatoryRule.category, RegulatoryRule.marketplace, RegulatoryRule.id).all()
    return {"rules": [RegulatoryRuleResponse.model_validate(r) for r in rules]}


@router.post("/rules", response_model=RegulatoryRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(payload: RegulatoryRuleCreate, db: Session = Depends(get_db)):
    rule = RegulatoryRule(**payload.model_dump())
    db.add(rule)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A rule with this requirement already exists for this category and marketplace",
        )
    db.refresh(rule)
    return rule


@router.patch("/rules/{rule_id}", response_model=RegulatoryRuleResponse)
async def update_rule(rule_id: int, payload: RegulatoryRuleUpdate, db: Session = Depends(get_db)):
    rule = _get_rule(db, rule_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(rule, field, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A rule with this requirement already exists for this category and marketplace",
        )
    db.refresh(rule)
    return rule


@router.delete("/rules/{rule_id}")
async def delete_rule(rule_id: int, db: Session = Depends(get_db)):
    rule = _get_rule(db, rule_id)
    db.delete(rule)
    db.commit()
    return {"message": "Rule deleted successfully"}


# ── Metrics ───────────────────────────────────────────────────────────────────

@router.get("/metrics")
async def get_metrics(db: Session = Depends(get_db)):
    """Platform-wide business and pipeline metrics"""
    now = datetime.utcnow()
    last_30 = now - timedelta(days=30)
    prev_30 = now - timedelta(days=60)

    total_users = db.query(func.count(User.id)).scalar()
    total_accounts = db.query(func.count(Account.id)).scalar()
    total_scans = db.query(func.count(Scan.id)).scalar()

    new_users = db.query(func.count(User.id)).filter(User.created_at >= last_30).scalar()
    prev_users = db.query(func.count(User.id)).filter(User.created_at >= prev_30, User.created_at < last_30).scalar()
    new_scans = db.query(func.count(Scan.id)).filter(Scan.created_at >= last_30).scalar()
    prev_scans = db.query(func.count(Scan.id)).filter(Scan.created_at >= prev_30, Scan.created_at < last_30).scalar()

    plan_counts = dict(db.query(Account.plan, func.count(Account.id)).group_by(Account.plan).all())
    plan_distribution = {plan.value: plan_counts.get(plan, 0) for plan in Plan}

    active_deluxe = (
        db.query(func.count(Account.id))
        .filter(Account.plan == Plan.DELUXE, Account.subscription_status == SubscriptionStatus.ACTIVE)
        .scalar()
    )

    category_counts = dict(db.query(Scan.category, func.count(Scan.id)).group_by(Scan.category).all())
    category_breakdown = {c.value: category_counts.get(c, 0) for c in Category}

    avg_score = (
        db.query(func.avg(Scan.score))
        .filter(Scan.status == ScanStatus.COMPLETED, Scan.score.isnot(None))
        .scalar()
    )

    revenue_cents = (
        db.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.status == PaymentStatus.COMPLETED)
        .scalar()
    )

    paid_accounts = sum(plan_distribution[p.value] for p in PAID_PLANS)

    return {
        "totals": {"users": total_users, "accounts": total_accounts, "scans": total_scans},
        "mrr": round(active_deluxe * DELUXE_MONTHLY_PRICE, 2),
        "planDistribution": plan_distribution,
        "growth": {
            "newUsers30d": new_users,
            "userGrowthRate": _growth(new_users, prev_users),
            "newScans30d": new_scans,
            "scanGrowthRate": _growth(new_scans, prev_scans),
        },
        "categoryBreakdown": category_breakdown,
        "avgComplianceScore": round(float(avg_score), 2) if avg_score is not None else 0,
        "totalRevenue": round(revenue_cents / 100, 2),
        "conversionRate": round(paid_accounts / total_accounts * 100, 2) if total_accounts else 0,
        "queue": get_queue_stats(db),
    }
