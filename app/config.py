"""Application Configuration"""
import os
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Product Label Checker"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    APP_URL: str = os.getenv("APP_URL", "http://localhost:3001")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:3001")

    # Security
    SECRET_KEY: str = os.getenv("SECRET_KEY", "your-secret-key-change-in-production")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./label_checker.db")

    # Queue (Celery on Redis)
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    SCAN_WORKER_CONCURRENCY: int = 2
    SCAN_MAX_ATTEMPTS: int = 3
    SCAN_RETRY_BACKOFF_SECONDS: int = 2
    # Celery task rate limit (jobs per worker)
    SCAN_RATE_LIMIT: str = "10/m"
    # API upload limit per user (slowapi syntax)
    SCAN_UPLOAD_RATE_LIMIT: str = "10/minute"

    # Object storage (MinIO, S3 compatible)
    MINIO_ENDPOINT: str = os.getenv("MINIO_ENDPOINT", "localhost")
    MINIO_PORT: int = 9000
    MINIO_ACCESS_KEY: Optional[str] = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
    MINIO_SECRET_KEY: Optional[str] = os.getenv("MINIO_SECRET_KEY", "minioadmin123")
    MINIO_BUCKET: str = os.getenv("MINIO_BUCKET", "product-labels")
    MINIO_USE_SSL: bool = False
    MINIO_REGION: str = "us-east-1"

    # AI (Claude through the OpenAI-compatible endpoint)
    ANTHROPIC_API_KEY: Optional[str] = os.getenv("ANTHROPIC_API_KEY")
    AI_BASE_URL: str = os.getenv("AI_BASE_URL", "https://api.anthropic.com/v1/")
    AI_MODEL: str = "claude-sonnet-4-5-20250929"
    AI_TEMPERATURE: float = 0.3
    AI_MAX_TOKENS: int = 4096

    # Stripe
    STRIPE_MODE: str = os.getenv("STRIPE_MODE", "sandbox")
    STRIPE_TEST_SECRET_KEY: Optional[str] = os.getenv("STRIPE_TEST_SECRET_KEY")
    STRIPE_LIVE_SECRET_KEY: Optional[str] = os.getenv("STRIPE_LIVE_SECRET_KEY")
    STRIPE_TEST_WEBHOOK_SECRET: Optional[str] = os.getenv("STRIPE_TEST_WEBHOOK_SECRET")
    STRIPE_LIVE_WEBHOOK_SECRET: Optional[str] = os.getenv("STRIPE_LIVE_WEBHOOK_SECRET")
    STRIPE_TEST_PRICE_ONE_TIME: Optional[str] = os.getenv("STRIPE_TEST_PRICE_ONE_TIME")
    STRIPE_TEST_PRICE_DELUXE: Optional[str] = os.getenv("STRIPE_TEST_PRICE_DELUXE")
    STRIPE_LIVE_PRICE_ONE_TIME: Optional[str] = os.getenv("STRIPE_LIVE_PRICE_ONE_TIME")
    STRIPE_LIVE_PRICE_DELUXE: Optional[str] = os.getenv("STRIPE_LIVE_PRICE_DELUXE")

    # Email (Resend)
    RESEND_API_KEY: Optional[str] = os.getenv("RESEND_API_KEY")
    RESEND_FROM_EMAIL: str = os.getenv("RESEND_FROM_EMAIL", "noreply@notif.plabiq.com")

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def is_live_stripe(self) -> bool:
        return self.STRIPE_MODE == "live"

    @property
    def stripe_secret_key(self) -> Optional[str]:
        return self.STRIPE_LIVE_SECRET_KEY if self.is_live_stripe else self.STRIPE_TEST_SECRET_KEY

    @property
    def stripe_webhook_secret(self) -> Optional[str]:
        return self.STRIPE_LIVE_WEBHOOK_SECRET if self.is_live_stripe else self.STRIPE_TEST_WEBHOOK_SECRET

    @property
    def stripe_prices(self) -> Dict[str, Optional[str]]:
        """Price id per purchasable plan for the active Stripe mode"""
        if self.is_live_stripe:
            return {"ONE_TIME": self.STRIPE_LIVE_PRICE_ONE_TIME, "DELUXE": self.STRIPE_LIVE_PRICE_DELUXE}
        return {"ONE_TIME": self.STRIPE_TEST_PRICE_ONE_TIME, "DELUXE": self.STRIPE_TEST_PRICE_DELUXE}

    @property
    def minio_endpoint_url(self) -> str:
        scheme = "https" if self.MINIO_USE_SSL else "http"
        return f"{scheme}://{self.MINIO_ENDPOINT}:{self.MINIO_PORT}"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Feature flags
    @property
    def has_stripe(self) -> bool:
        return bool(self.stripe_secret_key)

    @property
    def has_email(self) -> bool:
        return bool(self.RESEND_API_KEY)

    @property
    def has_ai(self) -> bool:
        return bool(self.ANTHROPIC_API_KEY)

    @property
    def has_storage(self) -> bool:
        return bool(self.MINIO_ACCESS_KEY and self.MINIO_SECRET_KEY)


settings = Settings()
