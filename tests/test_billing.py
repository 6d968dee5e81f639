"""Checkout, downgrade rules, billing history and Stripe webhook handling"""
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from conftest import auth_headers
from app.exceptions import BillingError
from app.models.account import AccountInvite, AccountRole, Plan, SubscriptionStatus
from app.models.payment import Payment, PaymentStatus
from app.services import billing_service, stripe_service


@pytest.fixture
def webhook(client, monkeypatch):
    """Posts an already-verified event to the webhook endpoint"""
    def _post(event_type, obj):
        event = {"type": event_type, "data": {"object": obj}}
        monkeypatch.setattr(stripe_service, "construct_event", lambda payload, signature: event)
        return client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=sig"})
    return _post


@pytest.fixture
def stripe_calls(monkeypatch):
    calls = []

    def fake_customer(account, user):
        account.stripe_customer_id = account.stripe_customer_id or "cus_123"
        calls.append(("customer", account.id))
        return account.stripe_customer_id

    def fake_cancel(subscription_id):
        calls.append(("cancel", subscription_id))
        return True

    def fake_checkout(account, user, plan):
        calls.append(("checkout", plan.value))
        return SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/cs_test_1")

    monkeypatch.setattr(stripe_service, "get_or_create_customer", fake_customer)
    monkeypatch.setattr(stripe_service, "cancel_subscription", fake_cancel)
    monkeypatch.setattr(stripe_service, "create_checkout_session", fake_checkout)
    return calls


class TestCheckout:

    def test_deluxe_checkout(self, client, make_user, db, stripe_calls):
        owner = make_user(email="owner@example.com")
        res = client.post("/api/billing/checkout", json={"planId": "DELUXE"}, headers=auth_headers(owner))
        assert res.status_code == 200
        assert res.json() == {"sessionId": "cs_test_1", "url": "https://checkout.stripe.com/c/cs_test_1"}
        db.refresh(owner.owned_account)
        assert owner.owned_account.stripe_customer_id == "cus_123"
        assert ("checkout", "DELUXE") in stripe_calls

    def test_existing_subscription_cancelled_first(self, client, make_user, db, stripe_calls):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        owner.owned_account.stripe_subscription_id = "sub_old"
        db.commit()
        client.post("/api/billing/checkout", json={"planId": "DELUXE"}, headers=auth_headers(owner))
        assert [c[0] for c in stripe_calls] == ["customer", "cancel", "checkout"]
        db.refresh(owner.owned_account)
        assert owner.owned_account.stripe_subscription_id is None

    def test_free_plan_not_purchasable(self, client, make_user, stripe_calls):
        owner = make_user(email="owner@example.com")
        res = client.post("/api/billing/checkout", json={"planId": "FREE"}, headers=auth_headers(owner))
        assert res.status_code == 400
        assert stripe_calls == []

    def test_unknown_plan(self, client, make_user, stripe_calls):
        owner = make_user(email="owner@example.com")
        res = client.post("/api/billing/checkout", json={"planId": "GOLD"}, headers=auth_headers(owner))
        assert res.status_code == 422

    def test_members_cannot_checkout(self, client, make_user, make_member, stripe_calls):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        member = make_member(owner.owned_account, "member@example.com")
        res = client.post("/api/billing/checkout", json={"planId": "DELUXE"}, headers=auth_headers(member))
        assert res.status_code == 403

    def test_stripe_not_configured(self, client, make_user):
        owner = make_user(email="owner@example.com")
        res = client.post("/api/billing/checkout", json={"planId": "DELUXE"}, headers=auth_headers(owner))
        assert res.status_code == 503
        assert res.json()["detail"] == "Payments are not configured"


class TestDowngrade:

    def test_validate_allows_solo_deluxe(self, client, make_user):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        body = client.get("/api/billing/validate-downgrade", headers=auth_headers(owner)).json()
        assert body == {
            "canDowngrade": True, "currentPlan": "DELUXE",
            "activeMembers": 0, "pendingInvites": 0, "reason": None,
        }

    def test_blocked_by_members_and_invites(self, client, make_user, make_member, db):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        make_member(owner.owned_account, "member@example.com")
        db.add(AccountInvite(
            account_id=owner.owned_account.id, email="p@example.com", role=AccountRole.VIEWER,
            permissions=["SCAN_VIEW"], token="t1", invited_by=owner.id,
            expires_at=datetime.utcnow() + timedelta(days=3),
        ))
        db.commit()

        res = client.post("/api/billing/downgrade", headers=auth_headers(owner))
        assert res.status_code == 400
        detail = res.json()["detail"]
        assert detail["activeMembers"] == 1
        assert detail["pendingInvites"] == 1
        db.refresh(owner.owned_account)
        assert owner.owned_account.plan == Plan.DELUXE

    def test_one_time_cannot_downgrade(self, client, make_user):
        owner = make_user(email="owner@example.com", plan=Plan.ONE_TIME)
        assert client.get("/api/billing/validate-downgrade", headers=auth_headers(owner)).status_code == 400

    def test_free_cannot_downgrade(self, client, make_user):
        owner = make_user(email="owner@example.com")
        res = client.post("/api/billing/downgrade", headers=auth_headers(owner))
        assert res.status_code == 400
        assert res.json()["detail"] == "Already on FREE plan"

    def test_downgrade_cancels_and_moves_to_free(self, client, make_user, db, stripe_calls):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        owner.owned_account.stripe_subscription_id = "sub_live"
        db.commit()

        res = client.post("/api/billing/downgrade", headers=auth_headers(owner))
        assert res.status_code == 200
        assert ("cancel", "sub_live") in stripe_calls
        account = owner.owned_account
        db.refresh(account)
        assert account.plan == Plan.FREE
        assert account.scan_limit_per_month == 1
        assert account.subscription_status == SubscriptionStatus.CANCELED
        assert account.stripe_subscription_id is None

    def test_downgrade_survives_cancel_failure(self, client, make_user, db, monkeypatch):
        def broken_cancel(subscription_id):
            raise BillingError("Payments are not configured", status_code=503)

        monkeypatch.setattr(stripe_service, "cancel_subscription", broken_cancel)
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        owner.owned_account.stripe_subscription_id = "sub_live"
        db.commit()
        assert client.post("/api/billing/downgrade", headers=auth_headers(owner)).status_code == 200
        db.refresh(owner.owned_account)
        assert owner.owned_account.plan == Plan.FREE


class TestHistory:

    def test_amounts_in_major_units(self, client, make_user, db):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        db.add(Payment(
            account_id=owner.owned_account.id, stripe_invoice_id="in_1", amount=2999, currency="usd",
            status=PaymentStatus.COMPLETED, plan=Plan.DELUXE, description="Deluxe subscription",
        ))
        db.commit()
        payments = client.get("/api/billing/history", headers=auth_headers(owner)).json()["payments"]
        assert payments[0]["amount"] == 29.99
        assert payments[0]["currency"] == "USD"
        assert payments[0]["plan"] == "DELUXE"

    def test_viewer_without_billing_permission(self, client, make_user, make_member):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        viewer = make_member(owner.owned_account, "viewer@example.com")
        assert client.get("/api/billing/history", headers=auth_headers(viewer)).status_code == 403


class TestWebhook:

    def test_missing_secret(self, client):
        res = client.post("/api/stripe/webhook", content=b"{}")
        assert res.status_code == 503

    def test_missing_signature(self, client, monkeypatch):
        from app.config import settings

        monkeypatch.setattr(settings, "STRIPE_TEST_WEBHOOK_SECRET", "whsec_test")
        res = client.post("/api/stripe/webhook", content=b"{}")
        assert res.status_code == 400

    def test_unhandled_event(self, webhook):
        assert webhook("customer.created", {"id": "cus_1"}).json() == {"received": True, "handled": False}

    def test_subscription_checkout(self, webhook, make_user, db):
        owner = make_user(email="owner@example.com")
        account = owner.owned_account
        account.scans_used_this_month = 1
        db.commit()

        res = webhook("checkout.session.completed", {
            "id": "cs_1",
            "customer": "cus_9",
            "subscription": "sub_9",
            "metadata": {"accountId": str(account.id), "planId": "DELUXE"},
        })
        assert res.json()["handled"] is True
        db.refresh(account)
        assert account.plan == Plan.DELUXE
        assert account.subscription_status == SubscriptionStatus.ACTIVE
        assert account.stripe_subscription_id == "sub_9"
        assert account.stripe_customer_id == "cus_9"
        assert account.scan_limit_per_month is None
        assert account.scans_used_this_month == 0
        assert db.query(Payment).count() == 0

    def test_one_time_checkout_records_payment_once(self, webhook, make_user, db):
        owner = make_user(email="owner@example.com")
        account = owner.owned_account
        account.scans_used_this_month = 1
        db.commit()
        session = {
            "id": "cs_2",
            "customer": "cus_9",
            "subscription": None,
            "payment_intent": "pi_1",
            "amount_total": 5999,
            "currency": "usd",
            "metadata": {"accountId": str(account.id), "planId": "ONE_TIME"},
        }
        webhook("checkout.session.completed", session)
        webhook("checkout.session.completed", session)

        db.refresh(account)
        assert account.plan == Plan.ONE_TIME
        assert account.subscription_status == SubscriptionStatus.INACTIVE
        assert account.scan_limit_per_month == 1
        assert account.scans_used_this_month == 0
        payment = db.query(Payment).one()
        assert payment.amount == 5999
        assert payment.plan == Plan.ONE_TIME

    def test_checkout_without_metadata_ignored(self, webhook, make_user, db):
        owner = make_user(email="owner@example.com")
        webhook("checkout.session.completed", {"id": "cs_3", "metadata": {}})
        db.refresh(owner.owned_account)
        assert owner.owned_account.plan == Plan.FREE

    def test_invoice_paid_is_idempotent(self, webhook, make_user, db):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        owner.owned_account.stripe_customer_id = "cus_9"
        db.commit()
        invoice = {
            "id": "in_1", "customer": "cus_9", "subscription": "sub_9",
            "amount_paid": 2999, "currency": "usd", "hosted_invoice_url": "https://invoice.stripe.com/i/1",
        }
        webhook("invoice.payment_succeeded", invoice)
        webhook("invoice.payment_succeeded", invoice)

        payment = db.query(Payment).one()
        assert payment.stripe_invoice_id == "in_1"
        assert payment.receipt_url == "https://invoice.stripe.com/i/1"
        db.refresh(owner.owned_account)
        assert owner.owned_account.stripe_subscription_id == "sub_9"

    def test_invoice_failed_marks_past_due(self, webhook, make_user, db):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        owner.owned_account.stripe_customer_id = "cus_9"
        db.commit()
        webhook("invoice.payment_failed", {"id": "in_2", "customer": "cus_9"})
        db.refresh(owner.owned_account)
        assert owner.owned_account.subscription_status == SubscriptionStatus.PAST_DUE

    def test_subscription_cancel_scheduled(self, webhook, make_user, db):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        owner.owned_account.stripe_customer_id = "cus_9"
        db.commit()
        cancel_at = int((datetime.utcnow() + timedelta(days=10)).timestamp())
        webhook("customer.subscription.updated", {"id": "sub_9", "customer": "cus_9", "status": "active", "cancel_at": cancel_at})
        db.refresh(owner.owned_account)
        assert owner.owned_account.subscription_cancel_at is not None
        assert owner.owned_account.plan == Plan.DELUXE

    @pytest.mark.parametrize("stripe_status,expected", [
        ("active", SubscriptionStatus.ACTIVE),
        ("trialing", SubscriptionStatus.TRIALING),
        ("past_due", SubscriptionStatus.PAST_DUE),
        ("unpaid", SubscriptionStatus.PAST_DUE),
        ("canceled", SubscriptionStatus.CANCELED),
        ("incomplete", SubscriptionStatus.INACTIVE),
        ("incomplete_expired", SubscriptionStatus.INACTIVE),
        ("paused", SubscriptionStatus.INACTIVE),
    ])
    def test_subscription_updated_mirrors_status(self, webhook, make_user, db, stripe_status, expected):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        owner.owned_account.stripe_customer_id = "cus_9"
        db.commit()
        webhook("customer.subscription.updated", {"id": "sub_9", "customer": "cus_9", "status": stripe_status})
        db.refresh(owner.owned_account)
        assert owner.owned_account.subscription_status == expected

    def test_unknown_subscription_status_keeps_current(self, webhook, make_user, db):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        owner.owned_account.stripe_customer_id = "cus_9"
        db.commit()
        webhook("customer.subscription.updated", {"id": "sub_9", "customer": "cus_9", "status": "mystery"})
        db.refresh(owner.owned_account)
        assert owner.owned_account.subscription_status == SubscriptionStatus.ACTIVE

    def test_subscription_deleted_downgrades(self, webhook, make_user, db):
        owner = make_user(email="owner@example.com", plan=Plan.DELUXE)
        owner.owned_account.stripe_customer_id = "cus_9"
        owner.owned_account.stripe_subscription_id = "sub_9"
        db.commit()
        webhook("customer.subscription.deleted", {"id": "sub_9", "customer": "cus_9"})
        db.refresh(owner.owned_account)
        assert owner.owned_account.plan == Plan.FREE
        assert owner.owned_account.stripe_subscription_id is None

    def test_charge_fills_receipt(self, db, make_user):
        owner = make_user(email="owner@example.com", plan=Plan.ONE_TIME)
        db.add(Payment(
            account_id=owner.owned_account.id, stripe_payment_intent_id="pi_7", amount=5999,
            status=PaymentStatus.COMPLETED, plan=Plan.ONE_TIME,
        ))
        db.commit()
        event = {"type": "charge.succeeded", "data": {"object": {"payment_intent": "pi_7", "receipt_url": "https://pay.stripe.com/r/7"}}}
        assert billing_service.handle_webhook_event(db, event) is True
        assert db.query(Payment).one().receipt_url == "https://pay.stripe.com/r/7"


class TestPriceLookup:

    def test_plan_for_price(self, monkeypatch):
        from app.config import settings

        monkeypatch.setattr(settings, "STRIPE_TEST_PRICE_DELUXE", "price_deluxe")
        assert stripe_service.plan_for_price("price_deluxe") == Plan.DELUXE
        assert stripe_service.plan_for_price("price_other") is None
