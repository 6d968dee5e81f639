"""Billing schemas"""
from datetime import datetime
from typing import Optional

from app.models.account import Plan
from app.models.payment import PaymentStatus
from app.schemas.common import CamelModel


class CheckoutRequest(CamelModel):
    plan_id: Plan


class CheckoutResponse(CamelModel):
    session_id: str
    url: Optional[str] = None


class PaymentResponse(CamelModel):
    id: int
    amount: float
    currency: str
    status: PaymentStatus
    plan: Optional[Plan] = None
    description: Optional[str] = None
    receipt_url: Optional[str] = None
    created_at: datetime


class DowngradeCheck(CamelModel):
    can_downgrade: bool
    current_plan: Plan
    active_members: int = 0
    pending_invites: int = 0
    reason: Optional[str] = None
