"""Team membership and invitation schemas"""
from datetime import datetime
from typing import List, Optional

from pydantic import EmailStr, Field, StrictBool, field_validator

from app.models.account import AccountPermission, AccountRole
from app.schemas.common import CamelModel


class MemberResponse(CamelModel):
    id: int
    user_id: int
    name: Optional[str] = None
    email: str
    role: AccountRole
    permissions: List[str]
    is_active: bool
    joined_at: datetime


class MemberUpdate(CamelModel):
    is_active: StrictBool


class InviteCreate(CamelModel):
    email: EmailStr
    role: AccountRole = AccountRole.VIEWER
    permissions: List[AccountPermission] = Field(default_factory=lambda: [AccountPermission.SCAN_VIEW])

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class InviteResponse(CamelModel):
    id: int
    email: str
    role: AccountRole
    permissions: List[str]
    invited_by: int
    invited_by_name: Optional[str] = None
    expires_at: datetime
    created_at: datetime


class InviteAccept(CamelModel):
    token: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=120)
    password: str = Field(..., min_length=8)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v
