"""Account schemas"""
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from app.models.account import Plan, SubscriptionStatus
from app.schemas.common import CamelModel


class AccountResponse(CamelModel):
    id: int
    name: str
    slug: str
    owner_id: int
    business_name: Optional[str] = None
    billing_email: Optional[str] = None
    plan: Plan
    subscription_status: SubscriptionStatus
    subscription_cancel_at: Optional[datetime] = None
    scan_limit_per_month: Optional[int] = None
    scans_used_this_month: int
    scan_limit_reset_at: Optional[datetime] = None
    is_active: bool
    created_at: datetime


class AccountUpdate(CamelModel):
    name: str = Field(..., min_length=2, max_length=120)
    business_name: Optional[str] = None
    billing_email: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Account name must be at least 2 characters")
        return v

    @field_validator("business_name", "billing_email")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class Usage(CamelModel):
    scans_used: int
    scan_limit: Optional[int] = None
    reset_date: Optional[datetime] = None
