"""Account, membership and invitation models"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Enum, ForeignKey, JSON, UniqueConstraint,
)
from sqlalchemy.orm import relationship
import enum
from app.database import Base

class Plan(str, enum.Enum):
    """Subscription tiers"""
    FREE = "FREE"
    DELUXE = "DELUXE"
    ONE_TIME = "ONE_TIME"

class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    TRIALING = "TRIALING"

class AccountRole(str, enum.Enum):
    """Role of a team member inside an account"""
    ADMIN = "ADMIN"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"

class AccountPermission(str, enum.Enum):
    SCAN_CREATE = "SCAN_CREATE"
    SCAN_VIEW = "SCAN_VIEW"
    SCAN_EDIT = "SCAN_EDIT"
    SCAN_DELETE = "SCAN_DELETE"
    TEAM_VIEW = "TEAM_VIEW"
    TEAM_INVITE = "TEAM_INVITE"
    TEAM_REMOVE = "TEAM_REMOVE"
    BILLING_VIEW = "BILLING_VIEW"
    BILLING_MANAGE = "BILLING_MANAGE"
    SETTINGS_VIEW = "SETTINGS_VIEW"
    SETTINGS_EDIT = "SETTINGS_EDIT"

ALL_PERMISSIONS = [p.value for p in AccountPermission]

class Account(Base):
    """Billing and workspace tenant"""
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    business_name = Column(String, nullable=True)
    billing_email = Column(String, nullable=True)

    plan = Column(Enum(Plan), default=Plan.FREE, nullable=False)
    subscription_status = Column(Enum(SubscriptionStatus), default=SubscriptionStatus.ACTIVE, nullable=False)
    stripe_customer_id = Column(String, unique=True, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)
    subscription_cancel_at = Column(DateTime, nullable=True)

    # Null limit means unlimited scans
    scan_limit_per_month = Column(Integer, nullable=True, default=1)
    scans_used_this_month = Column(Integer, default=0, nullable=False)
    scan_limit_reset_at = Column(DateTime, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User", back_populates="owned_account")
    members = relationship("AccountMember", back_populates="account", cascade="all, delete-orphan")
    invites = relationship("AccountInvite", back_populates="account", cascade="all, delete-orphan")
    scans = relationship("Scan", back_populates="account", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="account", cascade="all, delete-orphan")

class AccountMember(Base):
    """A non-owner user with access to an account"""
    __tablename__ = "account_members"
    __table_args__ = (UniqueConstraint("account_id", "user_id", name="uq_account_member"),)

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Enum(AccountRole), default=AccountRole.VIEWER, nullable=False)
    permissions = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    invited_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    account = relationship("Account", back_populates="members")
    user = relationship("User", back_populates="memberships", foreign_keys=[user_id])
    inviter = relationship("User", foreign_keys=[invited_by])

class AccountInvite(Base):
    """Pending invitation to join an account"""
    __tablename__ = "account_invites"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String, nullable=False, index=True)
    role = Column(Enum(AccountRole), default=AccountRole.VIEWER, nullable=False)
    permissions = Column(JSON, nullable=False, default=list)
    token = Column(String(64), unique=True, nullable=False, index=True)
    invited_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    account = relationship("Account", back_populates="invites")
    inviter = relationship("User", foreign_keys=[invited_by])

    def is_expired(self) -> bool:
        return datetime.utcnow() >= self.expires_at
