"""Registration, login, session and password reset"""
from datetime import datetime, timedelta

import pytest

from conftest import TEST_PASSWORD, auth_headers
from app.models.account import Account, AccountMember
from app.models.password_reset_token import PasswordResetToken
from app.models.user import User, UserRole


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    def fake_reset(to_email, reset_url, name=None):
        sent.append({"to": to_email, "url": reset_url})
        return True

    monkeypatch.setattr("app.routes.auth.email_service.send_password_reset_email", fake_reset)
    return sent


# =============================================================================
# REGISTER / LOGIN
# =============================================================================

class TestRegister:

    def test_register_creates_user_and_free_account(self, client, db):
        res = client.post("/api/auth/register", json={
            "name": "Jane Maker", "email": "Jane@Example.com", "password": "supersecret",
        })
        assert res.status_code == 201
        assert res.json()["token_type"] == "bearer"
        assert "access_token" in res.cookies

        user = db.query(User).filter(User.email == "jane@example.com").one()
        account = db.query(Account).filter(Account.owner_id == user.id).one()
        assert account.plan.value == "FREE"
        assert account.scan_limit_per_month == 1
        assert account.scans_used_this_month == 0
        assert account.name == "Jane Maker's Workspace"

    def test_duplicate_email_conflicts(self, client, make_user):
        make_user(email="taken@example.com")
        res = client.post("/api/auth/register", json={
            "name": "Other", "email": "taken@example.com", "password": "supersecret",
        })
        assert res.status_code == 409

    def test_short_password_rejected(self, client):
        res = client.post("/api/auth/register", json={
            "name": "Short", "email": "short@example.com", "password": "abc",
        })
        assert res.status_code == 422

    def test_blank_name_rejected(self, client, db):
        res = client.post("/api/auth/register", json={
            "name": "   ", "email": "blank@example.com", "password": "supersecret",
        })
        assert res.status_code == 422
        assert db.query(User).count() == 0


class TestLogin:

    def test_login_returns_token_and_cookie(self, client, make_user, db):
        user = make_user(email="login@example.com")
        res = client.post("/api/auth/login", json={"email": "login@example.com", "password": TEST_PASSWORD})
        assert res.status_code == 200
        assert res.json()["access_token"]
        assert "access_token" in res.cookies
        db.refresh(user)
        assert user.last_login is not None

    def test_wrong_password(self, client, make_user):
        make_user(email="login@example.com")
        res = client.post("/api/auth/login", json={"email": "login@example.com", "password": "nope-nope"})
        assert res.status_code == 401

    def test_unknown_email(self, client):
        res = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": TEST_PASSWORD})
        assert res.status_code == 401

    def test_deactivated_user(self, client, make_user):
        make_user(email="off@example.com", is_active=False)
        res = client.post("/api/auth/login", json={"email": "off@example.com", "password": TEST_PASSWORD})
        assert res.status_code == 403

    def test_deactivated_account(self, client, make_user, db):
        user = make_user(email="frozen@example.com")
        user.owned_account.is_active = False
        db.commit()
        res = client.post("/api/auth/login", json={"email": "frozen@example.com", "password": TEST_PASSWORD})
        assert res.status_code == 403

    def test_deactivated_membership(self, client, make_user, make_member):
        owner = make_user(email="boss@example.com")
        make_member(owner.owned_account, "benched@example.com", is_active=False)
        res = client.post("/api/auth/login", json={"email": "benched@example.com", "password": TEST_PASSWORD})
        assert res.status_code == 403
        assert "deactivated" in res.json()["detail"]

    def test_user_without_account_cannot_login(self, client, make_user):
        make_user(email="orphan@example.com", with_account=False)
        res = client.post("/api/auth/login", json={"email": "orphan@example.com", "password": TEST_PASSWORD})
        assert res.status_code == 403

    def test_platform_admin_without_account(self, client, make_user):
        make_user(email="root@example.com", with_account=False, role=UserRole.ADMIN)
        res = client.post("/api/auth/login", json={"email": "root@example.com", "password": TEST_PASSWORD})
        assert res.status_code == 200

    def test_form_token_endpoint(self, client, make_user):
        make_user(email="swagger@example.com")
        res = client.post("/api/auth/token", data={"username": "swagger@example.com", "password": TEST_PASSWORD})
        assert res.status_code == 200


class TestSession:

    def test_me_for_owner(self, client, make_user):
        user = make_user(email="me@example.com")
        res = client.get("/api/auth/me", headers=auth_headers(user))
        assert res.status_code == 200
        body = res.json()
        assert body["user"]["email"] == "me@example.com"
        assert body["isOwner"] is True
        assert body["accountRole"] == "OWNER"
        assert "SCAN_CREATE" in body["permissions"]

    def test_me_for_member(self, client, make_user, make_member):
        owner = make_user(email="lead@example.com")
        member = make_member(owner.owned_account, "helper@example.com")
        body = client.get("/api/auth/me", headers=auth_headers(member)).json()
        assert body["isOwner"] is False
        assert body["accountRole"] == "VIEWER"
        assert body["accountId"] == owner.owned_account.id
        assert body["permissions"] == ["SCAN_VIEW"]

    def test_cookie_auth(self, client, make_user):
        make_user(email="cookie@example.com")
        client.post("/api/auth/login", json={"email": "cookie@example.com", "password": TEST_PASSWORD})
        assert client.get("/api/auth/me").status_code == 200

    def test_missing_token(self, client):
        assert client.get("/api/auth/me").status_code == 401

    def test_garbage_token(self, client):
        res = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401

    def test_logout_clears_cookie(self, client):
        res = client.post("/api/auth/logout")
        assert res.status_code == 200
        assert 'access_token=""' in res.headers.get("set-cookie", "")


# =============================================================================
# PASSWORD RESET
# =============================================================================

class TestPasswordReset:

    def test_unknown_email_gets_generic_message(self, client, sent_emails):
        res = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
        assert res.status_code == 200
        assert "If an account exists" in res.json()["message"]
        assert sent_emails == []

    def test_forgot_password_replaces_old_tokens(self, client, make_user, db, sent_emails):
        user = make_user(email="forgetful@example.com")
        client.post("/api/auth/forgot-password", json={"email": "forgetful@example.com"})
        client.post("/api/auth/forgot-password", json={"email": "forgetful@example.com"})
        tokens = db.query(PasswordResetToken).filter(PasswordResetToken.user_id == user.id).all()
        assert len(tokens) == 1
        assert len(sent_emails) == 2
        assert tokens[0].token in sent_emails[-1]["url"]

    def test_user_without_password(self, client, make_user, db, sent_emails):
        user = make_user(email="nopass@example.com")
        user.hashed_password = None
        db.commit()
        res = client.post("/api/auth/forgot-password", json={"email": "nopass@example.com"})
        assert res.status_code == 400

    def test_verify_and_reset(self, client, make_user, db, sent_emails):
        user = make_user(email="reset@example.com")
        client.post("/api/auth/forgot-password", json={"email": "reset@example.com"})
        token = db.query(PasswordResetToken).filter(PasswordResetToken.user_id == user.id).one().token

        res = client.get(f"/api/auth/verify-reset-token/{token}")
        assert res.json() == {"valid": True, "email": "reset@example.com"}

        res = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
        assert res.status_code == 200
        assert db.query(PasswordResetToken).filter(PasswordResetToken.user_id == user.id).count() == 0

        res = client.post("/api/auth/login", json={"email": "reset@example.com", "password": "brand-new-pass"})
        assert res.status_code == 200

    def test_expired_token_is_deleted(self, client, make_user, db):
        user = make_user(email="late@example.com")
        db.add(PasswordResetToken(
            user_id=user.id, token="expired-token", expires_at=datetime.utcnow() - timedelta(minutes=1),
        ))
        db.commit()

        assert client.get("/api/auth/verify-reset-token/expired-token").status_code == 400
        res = client.post("/api/auth/reset-password", json={"token": "expired-token", "password": "brand-new-pass"})
        assert res.status_code == 400
        assert db.query(PasswordResetToken).filter(PasswordResetToken.token == "expired-token").count() == 0

    def test_reset_for_inactive_user(self, client, make_user, db):
        user = make_user(email="inactive-reset@example.com", is_active=False)
        db.add(PasswordResetToken(
            user_id=user.id, token="valid-token", expires_at=PasswordResetToken.default_expiry(),
        ))
        db.commit()
        res = client.post("/api/auth/reset-password", json={"token": "valid-token", "password": "brand-new-pass"})
        assert res.status_code == 403


# =============================================================================
# PROFILE
# =============================================================================

class TestProfile:

    def test_update_name(self, client, make_user):
        user = make_user(email="rename@example.com")
        res = client.patch("/api/profile", json={"name": "  New Name  "}, headers=auth_headers(user))
        assert res.status_code == 200
        assert res.json()["name"] == "New Name"

    def test_name_too_short(self, client, make_user):
        user = make_user(email="rename@example.com")
        res = client.patch("/api/profile", json={"name": " a "}, headers=auth_headers(user))
        assert res.status_code == 422

    def test_change_password(self, client, make_user):
        user = make_user(email="pw@example.com")
        res = client.post(
            "/api/profile/password",
            json={"currentPassword": TEST_PASSWORD, "newPassword": "another-pass"},
            headers=auth_headers(user),
        )
        assert res.status_code == 200

    def test_wrong_current_password(self, client, make_user):
        user = make_user(email="pw@example.com")
        res = client.post(
            "/api/profile/password",
            json={"currentPassword": "wrong-one", "newPassword": "another-pass"},
            headers=auth_headers(user),
        )
        assert res.status_code == 401
