"""Team members, invitations and public invitation acceptance"""
from datetime import datetime, timedelta

import pytest

from conftest import TEST_PASSWORD, auth_headers
from app.models.account import AccountInvite, AccountMember, AccountRole, Plan
from app.models.user import User


@pytest.fixture
def sent_invites(monkeypatch):
    sent = []

    def fake_send(**kwargs):
        sent.append(kwargs)
        return True

    monkeypatch.setattr("app.routes.team.email_service.send_invitation_email", fake_send)
    return sent


@pytest.fixture
def deluxe_owner(make_user):
    return make_user(email="owner@example.com", name="Olivia Owner", plan=Plan.DELUXE)


def make_invite(db, owner, email="invitee@example.com", expires_in=timedelta(days=7), token="tok-123"):
    invite = AccountInvite(
        account_id=owner.owned_account.id,
        email=email,
        role=AccountRole.EDITOR,
        permissions=["SCAN_VIEW", "SCAN_CREATE"],
        token=token,
        invited_by=owner.id,
        expires_at=datetime.utcnow() + expires_in,
    )
    db.add(invite)
    db.commit()
    db.refresh(invite)
    return invite


class TestInvitations:

    def test_create_invitation(self, client, deluxe_owner, db, sent_invites):
        res = client.post(
            "/api/team/invitations",
            json={"email": " New.Member@Example.com ", "role": "EDITOR", "permissions": ["SCAN_VIEW", "SCAN_CREATE"]},
            headers=auth_headers(deluxe_owner),
        )
        assert res.status_code == 201
        body = res.json()
        assert body["email"] == "new.member@example.com"
        assert body["invitedByName"] == "Olivia Owner"

        invite = db.query(AccountInvite).one()
        assert len(invite.token) == 36
        assert timedelta(days=6, hours=23) < invite.expires_at - datetime.utcnow() <= timedelta(days=7)
        assert sent_invites[0]["to_email"] == "new.member@example.com"
        assert sent_invites[0]["invite_url"].endswith(f"/invite/accept?token={invite.token}")

    def test_free_plan_cannot_invite(self, client, make_user, sent_invites):
        owner = make_user(email="owner@example.com")
        res = client.post("/api/team/invitations", json={"email": "x@example.com"}, headers=auth_headers(owner))
        assert res.status_code == 403
        assert "not available on the Basic plan" in res.json()["detail"]

    def test_cannot_invite_self(self, client, deluxe_owner, sent_invites):
        res = client.post(
            "/api/team/invitations", json={"email": "owner@example.com"}, headers=auth_headers(deluxe_owner)
        )
        assert res.status_code == 400

    def test_cap_counts_members_and_pending_invites(self, client, deluxe_owner, make_member, db, sent_invites):
        make_member(deluxe_owner.owned_account, "member@example.com")
        make_invite(db, deluxe_owner, email="pending@example.com")
        res = client.post(
            "/api/team/invitations", json={"email": "third@example.com"}, headers=auth_headers(deluxe_owner)
        )
        assert res.status_code == 403
        assert "maximum of 2 team members" in res.json()["detail"]

    def test_expired_invites_do_not_count(self, client, deluxe_owner, make_member, db, sent_invites):
        make_member(deluxe_owner.owned_account, "member@example.com")
        make_invite(db, deluxe_owner, email="stale@example.com", expires_in=timedelta(days=-1))
        res = client.post(
            "/api/team/invitations", json={"email": "second@example.com"}, headers=auth_headers(deluxe_owner)
        )
        assert res.status_code == 201

    def test_registered_email_conflicts(self, client, deluxe_owner, make_user, sent_invites):
        make_user(email="taken@example.com")
        res = client.post(
            "/api/team/invitations", json={"email": "taken@example.com"}, headers=auth_headers(deluxe_owner)
        )
        assert res.status_code == 409
        assert "already owns an account" in res.json()["detail"]

    def test_existing_member_conflicts(self, client, deluxe_owner, make_member, sent_invites):
        make_member(deluxe_owner.owned_account, "member@example.com")
        res = client.post(
            "/api/team/invitations", json={"email": "member@example.com"}, headers=auth_headers(deluxe_owner)
        )
        assert res.status_code == 409
        assert "already a member" in res.json()["detail"]

    def test_duplicate_active_invite(self, client, deluxe_owner, db, sent_invites):
        make_invite(db, deluxe_owner)
        res = client.post(
            "/api/team/invitations", json={"email": "invitee@example.com"}, headers=auth_headers(deluxe_owner)
        )
        assert res.status_code == 409

    def test_members_cannot_manage_team(self, client, deluxe_owner, make_member):
        member = make_member(deluxe_owner.owned_account, "member@example.com")
        assert client.get("/api/team/members", headers=auth_headers(member)).status_code == 403
        res = client.post("/api/team/invitations", json={"email": "x@example.com"}, headers=auth_headers(member))
        assert res.status_code == 403

    def test_list_includes_expired(self, client, deluxe_owner, db):
        make_invite(db, deluxe_owner, email="a@example.com", token="a")
        make_invite(db, deluxe_owner, email="b@example.com", token="b", expires_in=timedelta(days=-2))
        body = client.get("/api/team/invitations", headers=auth_headers(deluxe_owner)).json()
        assert {i["email"] for i in body["invitations"]} == {"a@example.com", "b@example.com"}

    def test_resend_extends_expiry(self, client, deluxe_owner, db, sent_invites):
        invite = make_invite(db, deluxe_owner, expires_in=timedelta(days=-1))
        res = client.post(f"/api/team/invitations/{invite.id}/resend", headers=auth_headers(deluxe_owner))
        assert res.status_code == 200
        assert res.json()["emailSent"] is True
        db.refresh(invite)
        assert invite.expires_at > datetime.utcnow() + timedelta(days=6)
        assert len(sent_invites) == 1

    def test_resend_reports_email_failure(self, client, deluxe_owner, db, monkeypatch):
        monkeypatch.setattr("app.routes.team.email_service.send_invitation_email", lambda **kwargs: False)
        invite = make_invite(db, deluxe_owner)
        res = client.post(f"/api/team/invitations/{invite.id}/resend", headers=auth_headers(deluxe_owner))
        assert res.json()["emailSent"] is False

    def test_cancel(self, client, deluxe_owner, db):
        invite = make_invite(db, deluxe_owner)
        res = client.delete(f"/api/team/invitations/{invite.id}", headers=auth_headers(deluxe_owner))
        assert res.status_code == 200
        assert db.query(AccountInvite).count() == 0

    def test_cancel_other_accounts_invite(self, client, deluxe_owner, make_user, db):
        other = make_user(email="other@example.com", plan=Plan.DELUXE)
        invite = make_invite(db, other)
        res = client.delete(f"/api/team/invitations/{invite.id}", headers=auth_headers(deluxe_owner))
        assert res.status_code == 404


class TestMembers:

    def test_list_members(self, client, deluxe_owner, make_member):
        make_member(deluxe_owner.owned_account, "viewer@example.com")
        body = client.get("/api/team/members", headers=auth_headers(deluxe_owner)).json()
        assert body["members"][0]["email"] == "viewer@example.com"
        assert body["members"][0]["role"] == "VIEWER"

    def test_deactivate_member(self, client, deluxe_owner, make_member, db):
        user = make_member(deluxe_owner.owned_account, "viewer@example.com")
        member = db.query(AccountMember).filter(AccountMember.user_id == user.id).one()
        res = client.patch(
            f"/api/team/members/{member.id}", json={"isActive": False}, headers=auth_headers(deluxe_owner)
        )
        assert res.status_code == 200
        assert res.json()["isActive"] is False
        # an inactive member has no account access
        assert client.get("/api/scans", headers=auth_headers(user)).status_code == 403

    def test_is_active_must_be_boolean(self, client, deluxe_owner, make_member, db):
        user = make_member(deluxe_owner.owned_account, "viewer@example.com")
        member = db.query(AccountMember).filter(AccountMember.user_id == user.id).one()
        res = client.patch(
            f"/api/team/members/{member.id}", json={"isActive": "no"}, headers=auth_headers(deluxe_owner)
        )
        assert res.status_code == 422

    def test_remove_member(self, client, deluxe_owner, make_member, db):
        user = make_member(deluxe_owner.owned_account, "viewer@example.com")
        member = db.query(AccountMember).filter(AccountMember.user_id == user.id).one()
        res = client.delete(f"/api/team/members/{member.id}", headers=auth_headers(deluxe_owner))
        assert res.status_code == 200
        assert db.query(AccountMember).count() == 0


class TestAcceptInvitation:

    def test_verify(self, client, deluxe_owner, db):
        make_invite(db, deluxe_owner)
        body = client.get("/api/invitations/verify", params={"token": "tok-123"}).json()
        assert body["invitation"]["email"] == "invitee@example.com"
        assert body["invitation"]["role"] == "EDITOR"
        assert body["invitation"]["invitedByName"] == "Olivia Owner"
        assert body["invitation"]["accountName"] == deluxe_owner.owned_account.name

    def test_verify_unknown_token(self, client):
        assert client.get("/api/invitations/verify", params={"token": "nope"}).status_code == 404

    def test_verify_expired(self, client, deluxe_owner, db):
        make_invite(db, deluxe_owner, expires_in=timedelta(minutes=-1))
        assert client.get("/api/invitations/verify", params={"token": "tok-123"}).status_code == 410

    def test_verify_registered_email(self, client, deluxe_owner, make_user, db):
        make_user(email="invitee@example.com", with_account=False)
        make_invite(db, deluxe_owner)
        assert client.get("/api/invitations/verify", params={"token": "tok-123"}).status_code == 409

    def test_accept_creates_member_and_consumes_invite(self, client, deluxe_owner, db):
        make_invite(db, deluxe_owner)
        res = client.post(
            "/api/invitations/accept",
            json={"token": "tok-123", "name": " Ivy Invitee ", "password": TEST_PASSWORD},
        )
        assert res.status_code == 201
        assert res.json()["user"]["name"] == "Ivy Invitee"

        user = db.query(User).filter(User.email == "invitee@example.com").one()
        assert user.email_verified_at is not None
        assert user.owned_account is None
        member = db.query(AccountMember).filter(AccountMember.user_id == user.id).one()
        assert member.account_id == deluxe_owner.owned_account.id
        assert member.role == AccountRole.EDITOR
        assert member.permissions == ["SCAN_VIEW", "SCAN_CREATE"]
        assert db.query(AccountInvite).count() == 0

        login = client.post("/api/auth/login", json={"email": "invitee@example.com", "password": TEST_PASSWORD})
        assert login.status_code == 200

    def test_accept_twice(self, client, deluxe_owner, db):
        make_invite(db, deluxe_owner)
        payload = {"token": "tok-123", "name": "Ivy", "password": TEST_PASSWORD}
        assert client.post("/api/invitations/accept", json=payload).status_code == 201
        assert client.post("/api/invitations/accept", json=payload).status_code == 404

    def test_accept_short_password(self, client, deluxe_owner, db):
        make_invite(db, deluxe_owner)
        res = client.post("/api/invitations/accept", json={"token": "tok-123", "name": "Ivy", "password": "short"})
        assert res.status_code == 422

    def test_accept_blank_name(self, client, deluxe_owner, db):
        make_invite(db, deluxe_owner)
        res = client.post(
            "/api/invitations/accept",
            json={"token": "tok-123", "name": "   ", "password": TEST_PASSWORD},
        )
        assert res.status_code == 422
        assert db.query(User).filter(User.email == "invitee@example.com").count() == 0
