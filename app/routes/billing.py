"""API Routes - Billing and Stripe webhooks"""
import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.database import get_db
from app.exceptions import BillingError
from app.models.account import AccountPermission, Plan
from app.models.payment import Payment
from app.schemas.billing import CheckoutRequest, CheckoutResponse, DowngradeCheck, PaymentResponse
from app.services import billing_service, stripe_service
from app.services.account_service import active_member_count, downgrade_to_free, pending_invite_count
from app.utils.auth import AccountContext, get_account_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["Billing"])
webhook_router = APIRouter(prefix="/api/stripe", tags=["Billing"])


def _downgrade_check(db: Session, ctx: AccountContext) -> DowngradeCheck:
    account = ctx.account
    if account.plan == Plan.ONE_TIME:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot downgrade from one-time plan. You have already paid for lifetime access.",
        )
    if account.plan == Plan.FREE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already on FREE plan")

    members = active_member_count(db, account.id)
    pending = pending_invite_count(db, account.id)
    blocked = members > 0 or pending > 0
    return DowngradeCheck(
        can_downgrade=not blocked,
        current_plan=account.plan,
        active_members=members,
        pending_invites=pending,
        reason="Cannot downgrade while you have team members or pending invitations" if blocked else None,
    )


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    payload: CheckoutRequest,
    ctx: AccountContext = Depends(get_account_context(require_owner=True)),
    db: Session = Depends(get_db),
):
    """Start a Stripe Checkout session for a paid plan"""
    plan = payload.plan_id
    if plan not in (Plan.DELUXE, Plan.ONE_TIME):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid plan selected")

    account = ctx.account
    await run_in_threadpool(stripe_service.get_or_create_customer, account, ctx.user)
    db.commit()

    # Never leave two live subscriptions on one customer
    if plan == Plan.DELUXE and account.stripe_subscription_id:
        await run_in_threadpool(stripe_service.cancel_subscription, account.stripe_subscription_id)
        account.stripe_subscription_id = None
        db.commit()

    session = await run_in_threadpool(stripe_service.create_checkout_session, account, ctx.user, plan)
    logger.info(f"Checkout session {session.id} created for account {account.id} ({plan.value})")
    return CheckoutResponse(session_id=session.id, url=session.url)


@router.post("/portal")
async def create_portal(ctx: AccountContext = Depends(get_account_context(require_owner=True))):
    """Stripe customer portal for managing payment methods and invoices"""
    url = await run_in_threadpool(stripe_service.create_portal_session, ctx.account)
    return {"url": url}


@router.get("/history")
async def billing_history(
    ctx: AccountContext = Depends(get_account_context(require_permissions=[AccountPermission.BILLING_VIEW])),
    db: Session = Depends(get_db),
):
    payments = (
        db.query(Payment)
        .filter(Payment.account_id == ctx.account_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )
    return {
        "payments": [
            PaymentResponse(
                id=p.id,
                amount=p.amount / 100,
                currency=(p.currency or "usd").upper(),
                status=p.status,
                plan=p.plan,
                description=p.description,
                receipt_url=p.receipt_url,
                created_at=p.created_at,
            )
            for p in payments
        ]
    }


@router.get("/validate-downgrade", response_model=DowngradeCheck)
async def validate_downgrade(
    ctx: AccountContext = Depends(get_account_context(require_owner=True)),
    db: Session = Depends(get_db),
):
    """Whether the account can move to FREE, with the counts that block it"""
    return _downgrade_check(db, ctx)


@router.post("/downgrade")
async def downgrade(
    ctx: AccountContext = Depends(get_account_context(require_owner=True)),
    db: Session = Depends(get_db),
):
    check = _downgrade_check(db, ctx)
    if not check.can_downgrade:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": check.reason,
                "activeMembers": check.active_members,
                "pendingInvites": check.pending_invites,
            },
        )

    account = ctx.account
    if account.stripe_subscription_id:
        try:
            await run_in_threadpool(stripe_service.cancel_subscription, account.stripe_subscription_id)
        except (BillingError, stripe.StripeError) as e:
            # Webhook cleanup covers subscriptions Stripe already ended
            logger.error(f"Downgrade: could not cancel subscription for account {account.id}: {e}")

    downgrade_to_free(account)
    db.commit()
    logger.info(f"Account {account.id} downgraded to FREE")
    return {"success": True, "message": "Successfully downgraded to FREE plan", "plan": Plan.FREE.value}


@webhook_router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Signature-verified Stripe event receiver"""
    payload = await request.body()
    event = stripe_service.construct_event(payload, request.headers.get("stripe-signature"))
    handled = await run_in_threadpool(billing_service.handle_webhook_event, db, event)
    return {"received": True, "handled": handled}
