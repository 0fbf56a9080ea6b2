from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./vendorflow.db"

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # JWT Settings (tokens are issued by the identity service)
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # App Settings
    APP_NAME: str = "VendorFlow Fulfillment API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Frontend URL for customer-facing links
    FRONTEND_URL: str = "http://localhost:3000"

    # Where admin-facing notifications go (empty disables them)
    ADMIN_NOTIFICATION_EMAIL: str = ""

    # Currency used when the store does not report one
    DEFAULT_CURRENCY: str = "USD"

    # Background scheduler
    SCHEDULER_ENABLED: bool = True
    MONITORING_INTERVAL_MINUTES: int = 60  # How often the monitoring scan runs
    PROOF_EXPIRY_SWEEP_ENABLED: bool = False  # Persist "expired" on stale pending proofs

    # Customer proof approvals
    PROOF_APPROVAL_EXPIRY_DAYS: int = 7

    # Monitoring threshold defaults (overridable at runtime via system settings)
    UNASSIGNED_ORDER_HOURS: int = 24
    ASSIGNED_BUT_NOT_ACCEPTED_HOURS: int = 48
    ACCEPTED_BUT_NOT_STARTED_HOURS: int = 72
    IN_PROGRESS_TOO_LONG_DAYS: int = 7
    NO_TRACKING_AFTER_DAYS: int = 3
    STALE_TRACKING_DAYS: int = 14
    PROOF_EXPIRY_WARNING_HOURS: int = 24

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('MONITORING_INTERVAL_MINUTES')
    @classmethod
    def validate_monitoring_interval(cls, v):
        if v < 15:
            raise ValueError("MONITORING_INTERVAL_MINUTES must be at least 15")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin for origin in self.CORS_ORIGINS if origin]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
