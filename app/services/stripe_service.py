"""Stripe checkout, portal and subscription calls"""
import logging
from typing import Optional

import stripe

from app.config import settings
from app.exceptions import BillingError
from app.models.account import Account, Plan
from app.models.user import User

logger = logging.getLogger(__name__)

API_VERSION = "2024-06-20"


def _configure() -> None:
    if not settings.has_stripe:
        raise BillingError("Payments are not configured", status_code=503)
    stripe.api_key = settings.stripe_secret_key
    stripe.api_version = API_VERSION


def plan_for_price(price_id: Optional[str]) -> Optional[Plan]:
    """Reverse lookup of the configured price ids"""
    for plan_id, configured in settings.stripe_prices.items():
        if configured and configured == price_id:
            return Plan(plan_id)
    return None


def get_or_create_customer(account: Account, user: User) -> str:
    _configure()
    if account.stripe_customer_id:
        return account.stripe_customer_id
    customer = stripe.Customer.create(
        email=account.billing_email or user.email,
        name=account.business_name or account.name,
        metadata={"accountId": str(account.id), "userId": str(user.id)},
    )
    account.stripe_customer_id = customer.id
    return customer.id


def cancel_subscription(subscription_id: Optional[str]) -> bool:
    """Cancel immediately. Missing or already-cancelled subscriptions count as done."""
    if not subscription_id:
        return False
    _configure()
    try:
        stripe.Subscription.cancel(subscription_id)
        logger.info(f"Cancelled Stripe subscription {subscription_id}")
        return True
    except stripe.InvalidRequestError as e:
        logger.warning(f"Subscription {subscription_id} could not be cancelled: {e}")
        return False


def create_checkout_session(account: Account, user: User, plan: Plan) -> stripe.checkout.Session:
    _configure()
    price_id = settings.stripe_prices.get(plan.value)
    if not price_id:
        raise BillingError(f"No Stripe price configured for {plan.value}")

    customer_id = get_or_create_customer(account, user)
    billing_url = f"{settings.APP_URL}/dashboard/billing"
    mode = "subscription" if plan == Plan.DELUXE else "payment"
    metadata = {"accountId": str(account.id), "planId": plan.value, "userId": str(user.id)}

    params = dict(
        customer=customer_id,
        mode=mode,
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=f"{billing_url}?success=true&session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{billing_url}?canceled=true",
        metadata=metadata,
    )
    if mode == "subscription":
        params["subscription_data"] = {"metadata": metadata}
    else:
        params["payment_intent_data"] = {"metadata": metadata}

    try:
        return stripe.checkout.Session.create(**params)
    except stripe.StripeError as e:
        logger.error(f"Checkout session creation failed: {e}")
        raise BillingError("Failed to create checkout session", status_code=502)


def create_portal_session(account: Account) -> str:
    _configure()
    if not account.stripe_customer_id:
        raise BillingError("No billing account found")
    try:
        session = stripe.billing_portal.Session.create(
            customer=account.stripe_customer_id,
            return_url=f"{settings.APP_URL}/dashboard/billing",
        )
    except stripe.StripeError as e:
        logger.error(f"Portal session creation failed: {e}")
        raise BillingError("Failed to open billing portal", status_code=502)
    return session.url


def construct_event(payload: bytes, signature: Optional[str]):
    """Verify the webhook signature and parse the event"""
    secret = settings.stripe_webhook_secret
    if not secret:
        raise BillingError("Webhook secret not configured", status_code=503)
    if not signature:
        raise BillingError("Missing stripe-signature header")
    try:
        return stripe.Webhook.construct_event(payload, signature, secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise BillingError("Invalid signature")


def charge_receipt_url(payment_intent_id: Optional[str]) -> Optional[str]:
    """Receipt of the latest charge of a payment intent"""
    if not payment_intent_id or not settings.has_stripe:
        return None
    _configure()
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id, expand=["latest_charge"])
    except stripe.StripeError as e:
        logger.warning(f"Could not load payment intent {payment_intent_id}: {e}")
        return None
    charge = intent.get("latest_charge")
    if charge is None or isinstance(charge, str):
        return None
    return charge.get("receipt_url")
