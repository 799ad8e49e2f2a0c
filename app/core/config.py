from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path


class Settings(BaseSettings):
    # Database - local SQLite by default, override with environment variable for production
    DATABASE_URL: str = "sqlite:///./beta_admission.db"

    # Capacity seed values (the live values are stored in the capacity_config table)
    BETA_CAP: int = 150
    PUBLIC_ADMISSION_ENABLED: bool = False

    # Live admission rules
    AUTO_APPROVE_THRESHOLD: int = 0  # 0 => first come, first served
    CAPACITY_BUFFER: int = 0  # slots reserved for admin/wave/redemption admissions

    # Invites
    INVITE_QUOTA_DEFAULT: int = 3
    INVITE_CODE_MAX_USES: int = 1
    INVITE_CODE_TTL_DAYS: int = 30  # 0 => codes never expire
    INVITE_CODE_PREFIX: str = "BETA"

    # Referral rewards: REFERRAL_BONUS_AMOUNT invites per REFERRAL_BONUS_EVERY edges
    REFERRAL_BONUS_EVERY: int = 3
    REFERRAL_BONUS_AMOUNT: int = 1

    # Scoring table used for new submissions
    SCORING_VERSION: str = "v2"

    # Bounded retries
    CAPACITY_MAX_RETRIES: int = 5
    DB_MAX_RETRIES: int = 3
    DB_RETRY_BACKOFF_SECONDS: float = 0.05

    # Waitlist
    WAITLIST_DEFAULT_DAILY_ADMISSIONS: int = 5
    WAVE_DEFAULT_SIZE: int = 50

    # Background work
    WAVES_VIA_CELERY: bool = False
    NOTIFICATIONS_VIA_CELERY: bool = False

    # Redis (celery broker + rate limiting) - defaults to local, override for production
    REDIS_URL: str = "redis://localhost:6379"

    # Rate limiting of public endpoints
    RATE_LIMIT_ENABLED: bool = True
    SUBMIT_MAX_PER_MINUTE: int = 10
    REDEEM_MAX_PER_MINUTE: int = 10

    # Resend (Email)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Beta Team <noreply@example.com>"
    EMAIL_ENABLED: bool = True

    # Operator tooling (supply via environment; do not hardcode secrets)
    ADMIN_API_TOKEN: str = ""

    # App Settings
    DEBUG: bool = True
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        # Use absolute path to .env file
        env_file = Path(__file__).parent.parent.parent / ".env"
        env_file_encoding = 'utf-8'
        extra = "ignore"


settings = Settings()
