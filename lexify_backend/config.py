"""
Configuration for the Lifecycle Service
=======================================

Environment variables:
- CRON_SECRET: Shared secret expected in the x-cron-secret header (required for sweeps)
- ACCEPT_WINDOW_DAYS: Purchaser decision window after bidding closes (default: 7)
- EXTENSION_HOURS: One-time "need more time" grace period (default: 24)
- TOP_OFFERS_LIMIT: Number of lowest offers shown to purchasers (default: 3)
- SUPPORT_EMAIL: Support mailbox, BCC'd on contract mail (default: support@lexify.online)
- NOTIFICATIONS_ASYNC: Send notifications through RQ instead of inline (default: false)
- REDIS_URL: Redis connection for RQ (default: redis://localhost:6379/0)
- APP_URL: Public URL used in email links
"""

from typing import Optional, List
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Cron
    cron_secret: Optional[str] = None

    # Caller identity: X-User-Id is trusted for purchaser routes only unless
    # admin_requires_token is switched off
    allow_user_id_header: bool = True
    admin_requires_token: bool = True

    # Decision windows
    accept_window_days: int = 7
    extension_hours: int = 24

    # Purchaser views
    top_offers_limit: int = 3

    # Notifications
    support_email: str = "support@lexify.online"
    notifications_async: bool = False
    redis_url: str = "redis://localhost:6379/0"
    app_url: str = "http://localhost:3000"

    # Service info
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    def validate_config(self) -> List[str]:
        """Validate configuration, return list of warnings"""
        warnings = []

        if not self.cron_secret:
            warnings.append("CRON_SECRET not set - every sweep call will be rejected")

        if self.accept_window_days <= 0:
            warnings.append("ACCEPT_WINDOW_DAYS must be positive")

        if self.top_offers_limit <= 0:
            warnings.append("TOP_OFFERS_LIMIT must be positive")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
