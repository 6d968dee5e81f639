"""
Plan limits and feature gates.

Every plan decision in the API (scan quota, team size, report export) goes
through the helpers here so the limits live in one table.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from app.models.account import Plan


@dataclass(frozen=True)
class PlanLimits:
    id: Plan
    name: str
    price: float
    interval: Optional[str]
    max_team_members: int
    scans_per_month: Optional[int]  # None = unlimited
    features: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id.value,
            "name": self.name,
            "price": self.price,
            "interval": self.interval,
            "maxTeamMembers": self.max_team_members,
            "scansPerMonth": self.scans_per_month,
            "features": list(self.features),
        }


PLAN_LIMITS = {
    Plan.FREE: PlanLimits(
        id=Plan.FREE,
        name="Basic",
        price=0,
        interval=None,
        max_team_members=0,
        scans_per_month=1,
        features=["1 label scan per month", "View-only results", "Email support"],
    ),
    Plan.ONE_TIME: PlanLimits(
        id=Plan.ONE_TIME,
        name="One-Time Use",
        price=59.99,
        interval=None,
        max_team_members=0,
        scans_per_month=1,
        features=["1 comprehensive label scan", "All Deluxe features", "PDF compliance report"],
    ),
    Plan.DELUXE: PlanLimits(
        id=Plan.DELUXE,
        name="Deluxe",
        price=29.99,
        interval="month",
        max_team_members=2,
        scans_per_month=None,
        features=[
            "Unlimited label scans",
            "Unlimited PDF exports",
            "Up to 2 team members",
            "Priority support",
        ],
    ),
}

PAID_PLANS = (Plan.DELUXE, Plan.ONE_TIME)


def _coerce(plan: Union[Plan, str, None]) -> Plan:
    if isinstance(plan, Plan):
        return plan
    try:
        return Plan(plan)
    except ValueError:
        return Plan.FREE


def get_plan_limits(plan: Union[Plan, str, None]) -> PlanLimits:
    """Limits for a plan. Unknown values fall back to FREE."""
    return PLAN_LIMITS[_coerce(plan)]


def can_invite_team_members(plan) -> bool:
    return get_plan_limits(plan).max_team_members > 0


def can_add_team_member(plan, current_count: int) -> bool:
    return current_count < get_plan_limits(plan).max_team_members


def remaining_team_slots(plan, current_count: int) -> int:
    return max(0, get_plan_limits(plan).max_team_members - current_count)


def scan_limit_for_plan(plan) -> Optional[int]:
    return get_plan_limits(plan).scans_per_month


def can_export_reports(plan) -> bool:
    return _coerce(plan) in PAID_PLANS


def next_reset_date(now: Optional[datetime] = None) -> datetime:
    """First day of the month following `now`, at midnight."""
    now = now or datetime.utcnow()
    if now.month == 12:
        return datetime(now.year + 1, 1, 1)
    return datetime(now.year, now.month + 1, 1)
