"""Database models"""
from app.models.user import User, UserRole
from app.models.account import (
    Account, AccountMember, AccountInvite, Plan, SubscriptionStatus,
    AccountRole, AccountPermission, ALL_PERMISSIONS,
)
from app.models.scan import Scan, ScanIssue, ScanStatus, Category, Marketplace, RiskLevel, IssueSeverity
from app.models.payment import Payment, PaymentStatus
from app.models.regulatory_rule import RegulatoryRule, RuleCriticality, SystemSettings, SYSTEM_SETTINGS_ID
from app.models.password_reset_token import PasswordResetToken

__all__ = [
    "User", "UserRole",
    "Account", "AccountMember", "AccountInvite", "Plan", "SubscriptionStatus",
    "AccountRole", "AccountPermission", "ALL_PERMISSIONS",
    "Scan", "ScanIssue", "ScanStatus", "Category", "Marketplace", "RiskLevel", "IssueSeverity",
    "Payment", "PaymentStatus",
    "RegulatoryRule", "RuleCriticality", "SystemSettings", "SYSTEM_SETTINGS_ID",
    "PasswordResetToken",
]
