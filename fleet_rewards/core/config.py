"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Connection URLs have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # CORS: comma separated (e.g. http://localhost:3000,https://fleet.example.com). Empty = default list in code.
    cors_origins: str = ""
    # Public origin of the web client, used to build referral share links.
    public_origin: str = "http://localhost:3000"

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_recycle: int = 1800  # recycle connections every 30 min (avoid stale)

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str  # Required, no default
    celery_result_backend: str  # Required, no default

    # ===========================================
    # IDENTITY (external auth gateway)
    # ===========================================
    # Header set by the authentication gateway with the caller's user id.
    user_id_header: str = "X-User-Id"
    # Shared secret expected from the signup event dispatcher. Empty = not checked.
    signup_webhook_secret: str | None = None
    signup_webhook_secret_header: str = "X-Webhook-Secret"

    # ===========================================
    # REWARDS LEDGER
    # ===========================================
    reward_currency: str = "CAD"  # default currency for implicitly created accounts
    signup_referral_credit_cents: int = 100

    # ===========================================
    # REFERRAL PROGRAM
    # ===========================================
    referral_code_length: int = 8
    referral_code_max_attempts: int = 5
    referral_expiry_days: int = 0  # 0 = pending referrals never expire
    referral_daily_invite_limit: int = 50
    referral_invite_limit_window_seconds: int = 86400

    # ===========================================
    # WITHDRAWALS
    # ===========================================
    min_withdrawal_cents: int = 2000

    # ===========================================
    # LOGGING
    # ===========================================
    request_id_header: str = "X-Request-Id"
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("reward_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Currency is an ISO 4217 alpha code."""
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("reward_currency must be a 3-letter currency code")
        return v

    @field_validator("signup_referral_credit_cents", "min_withdrawal_cents")
    @classmethod
    def validate_positive_amount(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("amounts must be positive minor units")
        return v

    @field_validator("referral_code_length", "referral_code_max_attempts")
    @classmethod
    def validate_code_settings(cls, v: int) -> int:
        if v < 1:
            raise ValueError("referral code settings must be at least 1")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
