"""Admin console schemas"""
from typing import Optional

from pydantic import EmailStr, Field

from app.models.account import Plan, SubscriptionStatus
from app.models.regulatory_rule import RuleCriticality
from app.models.scan import Category, Marketplace
from app.models.user import UserRole
from app.schemas.common import CamelModel


class AdminAccountCreate(CamelModel):
    account_name: str = Field(..., min_length=2)
    owner_name: str = Field(..., min_length=1)
    owner_email: EmailStr
    plan: Plan = Plan.FREE
    is_email_verified: bool = False
    is_active: bool = True


class AdminAccountUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2)
    plan: Optional[Plan] = None
    subscription_status: Optional[SubscriptionStatus] = None
    is_active: Optional[bool] = None
    scan_limit_per_month: Optional[int] = Field(None, ge=0)
    scans_used_this_month: Optional[int] = Field(None, ge=0)


class AdminUserUpdate(CamelModel):
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None


class SystemSettingsPayload(CamelModel):
    master_prompt: Optional[str] = None
    common_rules: Optional[str] = None
    us_rules: Optional[str] = None
    uk_rules: Optional[str] = None
    eu_rules: Optional[str] = None


class RegulatoryRuleCreate(CamelModel):
    category: Category
    marketplace: Marketplace
    requirement: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    regulation: Optional[str] = None
    criticality: RuleCriticality = RuleCriticality.MEDIUM
    example: Optional[str] = None
    is_active: bool = True


class RegulatoryRuleUpdate(CamelModel):
    requirement: Optional[str] = None
    description: Optional[str] = None
    regulation: Optional[str] = None
    criticality: Optional[RuleCriticality] = None
    example: Optional[str] = None
    is_active: Optional[bool] = None


class RegulatoryRuleResponse(RegulatoryRuleCreate):
    id: int
