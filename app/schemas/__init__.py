"""Pydantic schemas"""
from app.schemas.user import UserCreate, LoginRequest, Token, TokenData, UserResponse, MeResponse
from app.schemas.account import AccountResponse, AccountUpdate, Usage
from app.schemas.scan import ScanSummary, ScanDetail, ScanCreated, IssueResponse
from app.schemas.analysis import LabelAnalysisResult

__all__ = [
    "UserCreate", "LoginRequest", "Token", "TokenData", "UserResponse", "MeResponse",
    "AccountResponse", "AccountUpdate", "Usage",
    "ScanSummary", "ScanDetail", "ScanCreated", "IssueResponse",
    "LabelAnalysisResult",
]
