"""
Stripe webhook handling.

Each handler receives the event's `data.object` and mutates the database
session; `handle_webhook_event` commits once the handler returns.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.core.plans import get_plan_limits
from app.models.account import Account, Plan, SubscriptionStatus
from app.models.payment import Payment, PaymentStatus
from app.services import stripe_service
from app.services.account_service import apply_plan, downgrade_to_free

logger = logging.getLogger(__name__)

STRIPE_SUBSCRIPTION_STATUS = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete": SubscriptionStatus.INACTIVE,
    "incomplete_expired": SubscriptionStatus.INACTIVE,
    "paused": SubscriptionStatus.INACTIVE,
}


def _id_of(value) -> Optional[str]:
    """Stripe fields may hold an id or an expanded object"""
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


def _account_for_customer(db: Session, customer) -> Optional[Account]:
    customer_id = _id_of(customer)
    if not customer_id:
        return None
    return db.query(Account).filter(Account.stripe_customer_id == customer_id).first()


# ── Handlers ──────────────────────────────────────────────────────────────────

def _checkout_completed(db: Session, session) -> None:
    metadata = session.get("metadata") or {}
    account_id, plan_id = metadata.get("accountId"), metadata.get("planId")
    if not account_id or plan_id not in (Plan.DELUXE.value, Plan.ONE_TIME.value):
        logger.error("Stripe webhook: missing metadata in checkout session")
        return

    account = db.query(Account).filter(Account.id == int(account_id)).first()
    if account is None:
        logger.error(f"Stripe webhook: account {account_id} not found for checkout")
        return

    plan = Plan(plan_id)
    subscription_id = _id_of(session.get("subscription"))
    customer_id = _id_of(session.get("customer"))
    if customer_id and not account.stripe_customer_id:
        account.stripe_customer_id = customer_id

    apply_plan(
        account,
        plan,
        SubscriptionStatus.ACTIVE if subscription_id else SubscriptionStatus.INACTIVE,
        subscription_id=subscription_id,
    )
    account.subscription_cancel_at = None
    # A purchase starts a fresh allowance
    account.scans_used_this_month = 0

    # Subscription payments are recorded by invoice.payment_succeeded
    if subscription_id:
        return

    payment_intent_id = _id_of(session.get("payment_intent")) or session.get("id")
    existing = db.query(Payment).filter(Payment.stripe_payment_intent_id == payment_intent_id).first()
    if existing is not None:
        return
    db.add(Payment(
        account_id=account.id,
        stripe_payment_intent_id=payment_intent_id,
        amount=session.get("amount_total") or 0,
        currency=session.get("currency") or "usd",
        status=PaymentStatus.COMPLETED,
        plan=plan,
        description=f"{get_plan_limits(plan).name} purchase",
        receipt_url=stripe_service.charge_receipt_url(payment_intent_id),
    ))
    logger.info(f"Stripe webhook: payment recorded for one-time purchase on account {account.id}")


def _invoice_paid(db: Session, invoice) -> None:
    account = _account_for_customer(db, invoice.get("customer"))
    if account is None:
        logger.error(f"Stripe webhook: account not found for customer {invoice.get('customer')}")
        return

    plan = account.plan
    lines = (invoice.get("lines") or {}).get("data") or []
    if lines:
        price = lines[0].get("price") or {}
        plan = stripe_service.plan_for_price(_id_of(price)) or plan

    subscription_id = _id_of(invoice.get("subscription"))
    if subscription_id:
        apply_plan(account, plan, SubscriptionStatus.ACTIVE, subscription_id=subscription_id)

    invoice_id = invoice.get("id")
    if db.query(Payment).filter(Payment.stripe_invoice_id == invoice_id).first() is not None:
        logger.info(f"Stripe webhook: invoice {invoice_id} already recorded")
        return
    db.add(Payment(
        account_id=account.id,
        stripe_invoice_id=invoice_id,
        stripe_payment_intent_id=_id_of(invoice.get("payment_intent")),
        amount=invoice.get("amount_paid") or 0,
        currency=invoice.get("currency") or "usd",
        status=PaymentStatus.COMPLETED,
        plan=plan,
        description=f"{get_plan_limits(plan).name} subscription",
        receipt_url=invoice.get("hosted_invoice_url"),
    ))


def _invoice_failed(db: Session, invoice) -> None:
    account = _account_for_customer(db, invoice.get("customer"))
    if account is None:
        logger.error(f"Stripe webhook: account not found for customer {invoice.get('customer')}")
        return
    account.subscription_status = SubscriptionStatus.PAST_DUE
    logger.warning(f"Stripe webhook: payment failed for account {account.id}")


def _subscription_updated(db: Session, subscription) -> None:
    account = _account_for_customer(db, subscription.get("customer"))
    if account is None:
        logger.error(f"Stripe webhook: account not found for customer {subscription.get('customer')}")
        return
    cancel_at = subscription.get("cancel_at")
    # Still active until the cancellation date
    account.subscription_cancel_at = datetime.utcfromtimestamp(cancel_at) if cancel_at else None
    status = subscription.get("status")
    if status in STRIPE_SUBSCRIPTION_STATUS:
        account.subscription_status = STRIPE_SUBSCRIPTION_STATUS[status]
    else:
        logger.warning(f"Stripe webhook: unknown subscription status {status!r} for account {account.id}")


def _subscription_deleted(db: Session, subscription) -> None:
    account = _account_for_customer(db, subscription.get("customer"))
    if account is None:
        logger.error(f"Stripe webhook: account not found for customer {subscription.get('customer')}")
        return
    downgrade_to_free(account)
    logger.info(f"Stripe webhook: subscription ended, account {account.id} moved to FREE")


def _charge_receipt(db: Session, charge) -> None:
    payment_intent_id = _id_of(charge.get("payment_intent"))
    receipt_url = charge.get("receipt_url")
    if not payment_intent_id or not receipt_url:
        return
    payment = db.query(Payment).filter(Payment.stripe_payment_intent_id == payment_intent_id).first()
    if payment is None:
        logger.info(f"Stripe webhook: no payment record for PaymentIntent {payment_intent_id}")
        return
    if not payment.receipt_url or payment.stripe_invoice_id is None:
        payment.receipt_url = receipt_url


HANDLERS: Dict[str, Callable[[Session, dict], None]] = {
    "checkout.session.completed": _checkout_completed,
    "invoice.payment_succeeded": _invoice_paid,
    "invoice.payment_failed": _invoice_failed,
    "customer.subscription.updated": _subscription_updated,
    "customer.subscription.deleted": _subscription_deleted,
    "charge.succeeded": _charge_receipt,
    "charge.updated": _charge_receipt,
}


def handle_webhook_event(db: Session, event) -> bool:
    """Dispatch a verified event. Returns False for unhandled event types."""
    event_type = event["type"]
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Stripe webhook: unhandled event type {event_type}")
        return False

    logger.info(f"Stripe webhook: received {event_type}")
    handler(db, event["data"]["object"])
    db.commit()
    return True
