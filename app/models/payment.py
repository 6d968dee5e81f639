"""Payment database model"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
import enum
from app.database import Base
from app.models.account import Plan

class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"

class Payment(Base):
    """Stripe payment record. Amounts are stored in minor units (cents)."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    stripe_payment_intent_id = Column(String, unique=True, nullable=True, index=True)
    stripe_invoice_id = Column(String, unique=True, nullable=True, index=True)
    amount = Column(Integer, nullable=False)
    currency = Column(String(8), default="usd", nullable=False)
    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    plan = Column(Enum(Plan), nullable=True)
    description = Column(String, nullable=True)
    receipt_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    account = relationship("Account", back_populates="payments")
