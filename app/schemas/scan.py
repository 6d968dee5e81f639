"""Label scan schemas"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.models.account import Plan
from app.models.scan import Category, IssueSeverity, RiskLevel, ScanStatus
from app.schemas.common import CamelModel


class IssueResponse(CamelModel):
    id: int
    category: str
    severity: IssueSeverity
    description: str
    recommendation: Optional[str] = None
    regulation: Optional[str] = None


class ScanSummary(CamelModel):
    id: int
    product_name: str
    category: Category
    marketplaces: List[str]
    status: ScanStatus
    score: Optional[int] = None
    risk_level: Optional[RiskLevel] = None
    label_url: str
    created_at: datetime
    created_by: Optional[int] = None
    created_by_name: Optional[str] = None
    issues_count: int = 0


class ScanDetail(CamelModel):
    id: int
    product_name: str
    category: Category
    marketplaces: List[str]
    status: ScanStatus
    score: int = 0
    risk_level: Optional[RiskLevel] = None
    label_url: str
    original_filename: Optional[str] = None
    extracted_text: Optional[str] = None
    results: Optional[Dict[str, Any]] = None
    issues: List[IssueResponse] = []
    plan: Plan
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ScanCreated(CamelModel):
    id: int
    product_name: str
    category: Category
    status: ScanStatus
    created_at: datetime
