"""Structured output of the label analysis model"""
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.models.scan import IssueSeverity, RiskLevel

PASS_THRESHOLD = 99


class ComplianceVerdict(BaseModel):
    score: int = Field(..., ge=0, le=100)
    riskLevel: RiskLevel
    passed: bool = False

    @model_validator(mode="after")
    def derive_passed(self):
        # The model's own pass flag is not trusted
        self.passed = self.score >= PASS_THRESHOLD
        return self


class ComplianceIssue(BaseModel):
    category: str
    severity: IssueSeverity
    description: str
    recommendation: str = ""
    regulation: Optional[str] = None


class ExtractedInfo(BaseModel):
    productName: Optional[str] = None
    ingredients: List[str] = []
    warnings: List[str] = []
    certifications: List[str] = []
    weight: Optional[str] = None
    manufacturer: Optional[str] = None
    countryOfOrigin: Optional[str] = None


class LabelAnalysisResult(BaseModel):
    compliance: ComplianceVerdict
    issues: List[ComplianceIssue] = []
    summary: str
    extractedInfo: ExtractedInfo = ExtractedInfo()
