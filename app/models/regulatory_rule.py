"""Regulatory rules and system-wide analysis settings"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Enum, UniqueConstraint
import enum
from app.database import Base
from app.models.scan import Category, Marketplace

SYSTEM_SETTINGS_ID = "system_settings"

class RuleCriticality(str, enum.Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

class RegulatoryRule(Base):
    """A labeling requirement for a category in a marketplace"""
    __tablename__ = "regulatory_rules"
    __table_args__ = (
        UniqueConstraint("category", "marketplace", "requirement", name="uq_rule_category_marketplace_requirement"),
    )

    id = Column(Integer, primary_key=True, index=True)
    category = Column(Enum(Category), nullable=False, index=True)
    marketplace = Column(Enum(Marketplace), nullable=False, index=True)
    requirement = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    regulation = Column(String, nullable=True)
    criticality = Column(Enum(RuleCriticality), default=RuleCriticality.MEDIUM, nullable=False)
    example = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class SystemSettings(Base):
    """Singleton row holding the analysis prompt and free-form rule texts"""
    __tablename__ = "system_settings"

    id = Column(String, primary_key=True, default=SYSTEM_SETTINGS_ID)
    master_prompt = Column(Text, nullable=True)
    common_rules = Column(Text, nullable=True)
    us_rules = Column(Text, nullable=True)
    uk_rules = Column(Text, nullable=True)
    eu_rules = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
