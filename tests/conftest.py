"""
Shared fixtures: in-memory database, fake object storage, mocked Redis and
factories for users, accounts and scans.
"""
from __future__ import annotations

import io
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("STRIPE_MODE", "test")

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base, get_db
from app.main import app
from app.models.account import AccountMember, AccountPermission, AccountRole, Plan, SubscriptionStatus
from app.models.scan import Category, IssueSeverity, Scan, ScanIssue, ScanStatus
from app.models.user import User, UserRole
from app.services.account_service import apply_plan, create_account_for_user
from app.utils.auth import create_user_token, get_password_hash
from app.utils.limiter import limiter
from app.utils.storage import UPLOADS_PREFIX, get_storage

TEST_PASSWORD = "password123"
_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


# ── Fakes ─────────────────────────────────────────────────────────────────────

class FakeBody:
    def __init__(self, data: bytes):
        self._data = data

    def read(self) -> bytes:
        return self._data

    def iter_chunks(self, chunk_size: int = 1024):
        for i in range(0, len(self._data), chunk_size):
            yield self._data[i:i + chunk_size]


class FakeStorage:
    """In-memory stand-in for StorageManager"""

    def __init__(self):
        self.enabled = True
        self.bucket = "test-bucket"
        self.objects = {}
        self.deleted = []
        self._counter = 0

    def _key(self, url_or_key: str) -> str:
        if url_or_key.startswith(UPLOADS_PREFIX):
            return url_or_key[len(UPLOADS_PREFIX):]
        return url_or_key

    def upload_bytes(self, data, filename, content_type, folder="labels"):
        self._counter += 1
        key = f"{folder}/{self._counter}-{filename}"
        self.objects[key] = (data, content_type)
        return f"{UPLOADS_PREFIX}{key}"

    def get_bytes(self, url_or_key):
        return self.objects[self._key(url_or_key)][0]

    def get_object(self, url_or_key):
        data, content_type = self.objects[self._key(url_or_key)]
        return {"Body": FakeBody(data), "ContentType": content_type}

    def presigned_url(self, url_or_key, expires=3600, filename=None):
        return f"https://storage.example.com/{self._key(url_or_key)}?expires={expires}&filename={filename}"

    def delete_file(self, url_or_key):
        self.deleted.append(self._key(url_or_key))
        self.objects.pop(self._key(url_or_key), None)
        return True

    def health_check(self):
        return True


# ── Core fixtures ─────────────────────────────────────────────────────────────

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def redis_mock(monkeypatch):
    """Captures published scan events instead of talking to Redis"""
    client = MagicMock()
    monkeypatch.setattr("app.websocket.broadcast.get_redis_client", lambda: client)
    monkeypatch.setattr("app.tasks.scan_tasks.get_redis_client", lambda: client)
    return client


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def client(db, storage, redis_mock):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app, base_url="https://testserver")
    app.dependency_overrides = {}


# ── Factories ─────────────────────────────────────────────────────────────────

@pytest.fixture
def make_user(db):
    def _make_user(
        email: str = "owner@example.com",
        name: str = "Owner User",
        plan: Plan = Plan.FREE,
        with_account: bool = True,
        role: UserRole = UserRole.USER,
        is_active: bool = True,
    ) -> User:
        user = User(email=email, name=name, hashed_password=_PASSWORD_HASH, role=role, is_active=is_active)
        db.add(user)
        if with_account:
            account = create_account_for_user(db, user)
            apply_plan(account, plan, SubscriptionStatus.ACTIVE)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_member(db):
    def _make_member(account, email, role=AccountRole.VIEWER, permissions=None, is_active=True) -> User:
        user = User(email=email, name=email.split("@")[0].title(), hashed_password=_PASSWORD_HASH)
        db.add(user)
        db.flush()
        if permissions is None:
            permissions = [AccountPermission.SCAN_VIEW]
        db.add(AccountMember(
            account_id=account.id,
            user_id=user.id,
            role=role,
            permissions=[AccountPermission(p).value for p in permissions],
            invited_by=account.owner_id,
            is_active=is_active,
        ))
        db.commit()
        db.refresh(user)
        return user
    return _make_member


@pytest.fixture
def make_scan(db):
    def _make_scan(
        account,
        status: ScanStatus = ScanStatus.COMPLETED,
        score=90,
        product_name: str = "Wooden Blocks",
        issues=(),
        created_by=None,
        label_url: str = "/uploads/labels/1-label.png",
        created_at=None,
    ) -> Scan:
        scan = Scan(
            account_id=account.id,
            created_by=created_by or account.owner_id,
            product_name=product_name,
            category=Category.TOYS,
            marketplaces=["US"],
            label_url=label_url,
            original_filename="label.png",
            content_type="image/png",
            status=status,
            score=score if status == ScanStatus.COMPLETED else None,
            results={"summary": "Looks fine", "compliance": {"score": score, "passed": False}}
            if status == ScanStatus.COMPLETED else None,
            created_at=created_at or datetime.utcnow(),
        )
        db.add(scan)
        db.flush()
        for severity in issues:
            db.add(ScanIssue(
                scan_id=scan.id,
                category="Warnings",
                severity=IssueSeverity(severity),
                description=f"{severity} issue",
                recommendation="Fix it",
            ))
        db.commit()
        db.refresh(scan)
        return scan
    return _make_scan


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_user_token(user)}"}


def png_bytes(size=(32, 32), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def days_ago(days: int) -> datetime:
    return datetime.utcnow() - timedelta(days=days)
