"""Label scan database models"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Enum, ForeignKey
from sqlalchemy.orm import relationship
import enum
from app.database import Base

class ScanStatus(str, enum.Enum):
    """Scan status"""
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class Category(str, enum.Enum):
    """Product categories with dedicated label requirements"""
    TOYS = "TOYS"
    BABY_PRODUCTS = "BABY_PRODUCTS"
    COSMETICS_PERSONAL_CARE = "COSMETICS_PERSONAL_CARE"

class Marketplace(str, enum.Enum):
    US = "US"
    UK = "UK"
    DE = "DE"

class RiskLevel(str, enum.Enum):
    """Risk level classification"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

class IssueSeverity(str, enum.Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

class Scan(Base):
    """A single label compliance analysis job"""
    __tablename__ = "scans"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    product_name = Column(String, nullable=False)
    category = Column(Enum(Category), nullable=False)
    marketplaces = Column(JSON, nullable=False, default=list)
    label_url = Column(String, nullable=False)
    original_filename = Column(String, nullable=True)
    content_type = Column(String, nullable=True)
    status = Column(Enum(ScanStatus), default=ScanStatus.QUEUED, nullable=False, index=True)
    score = Column(Integer, nullable=True)
    risk_level = Column(Enum(RiskLevel), nullable=True)
    results = Column(JSON, nullable=True)  # Full analysis or error envelope
    extracted_text = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    account = relationship("Account", back_populates="scans")
    creator = relationship("User")
    issues = relationship("ScanIssue", back_populates="scan", cascade="all, delete-orphan")

class ScanIssue(Base):
    """Compliance issue reported for a scan"""
    __tablename__ = "scan_issues"

    id = Column(Integer, primary_key=True, index=True)
    scan_id = Column(Integer, ForeignKey("scans.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String, nullable=False)
    severity = Column(Enum(IssueSeverity), nullable=False)
    description = Column(Text, nullable=False)
    recommendation = Column(Text, nullable=True)
    regulation = Column(String, nullable=True)

    scan = relationship("Scan", back_populates="issues")
