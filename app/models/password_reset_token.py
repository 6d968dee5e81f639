import secrets
from datetime import datetime, timedelta
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base

class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(255), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationship
    user = relationship("User", back_populates="reset_tokens")

    def is_expired(self) -> bool:
        return datetime.utcnow() >= self.expires_at

    @staticmethod
    def create_token() -> str:
        """Generate a 32-byte hex token"""
        return secrets.token_hex(32)

    @staticmethod
    def default_expiry(hours: int = 1) -> datetime:
        return datetime.utcnow() + timedelta(hours=hours)
