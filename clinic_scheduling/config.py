"""
Application Configuration
Centralized configuration for Supabase, Redis, SMTP and the waitlist flow.

Uses Pydantic Settings so configuration is validated once at startup and can be
overridden in tests by constructing SchedulingSettings directly.
"""
import logging
import os
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings
from redis import Redis

logger = logging.getLogger(__name__)


class SchedulingSettings(BaseSettings):
    """Validated environment configuration."""

    # Supabase (waitlist + appointment persistence)
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""

    # Redis (optional cross-worker offer lock)
    REDIS_URL: Optional[str] = None

    # External calendar integration service
    CALENDAR_API_BASE_URL: str = "http://localhost:8000"
    CALENDAR_API_TOKEN: Optional[str] = None
    CALENDAR_CONFLICT_CHECKS_ENABLED: bool = True

    # Slot computation
    DEFAULT_SESSION_DURATION_MINUTES: int = 30

    # Waitlist offers
    WAITLIST_OFFER_TTL_HOURS: int = 24
    WAITLIST_ACCEPT_URL_TEMPLATE: str = "http://localhost:3000/waiting-list/accept/{token}"
    WAITLIST_CLEANUP_INTERVAL_MINUTES: int = 5

    # SMTP
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: str = "noreply@example.com"
    SMTP_FROM_NAME: str = "Clinic Scheduling"
    SMTP_USE_TLS: bool = True

    # Environment indicator
    ENVIRONMENT: str = "development"

    @field_validator("DEFAULT_SESSION_DURATION_MINUTES", "WAITLIST_OFFER_TTL_HOURS")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("WAITLIST_ACCEPT_URL_TEMPLATE")
    @classmethod
    def validate_accept_url(cls, v: str) -> str:
        if "{token}" not in v:
            raise ValueError("WAITLIST_ACCEPT_URL_TEMPLATE must contain a {token} placeholder")
        return v

    @field_validator("REDIS_URL")
    @classmethod
    def validate_redis_not_localhost_in_prod(cls, v: Optional[str]) -> Optional[str]:
        """Ensure Redis is not localhost in production."""
        env = os.getenv("ENVIRONMENT", "development")
        if v and "localhost" in v and env == "production":
            raise ValueError("REDIS_URL cannot point to localhost in production")
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",  # Allow extra env vars without validation errors
    }

    def accept_url(self, token: str) -> str:
        return self.WAITLIST_ACCEPT_URL_TEMPLATE.format(token=token)


@lru_cache
def get_settings() -> SchedulingSettings:
    """Load settings once per process."""
    return SchedulingSettings()


def validate_environment() -> bool:
    """
    Validate environment configuration at startup.
    Returns True if valid, logs errors and returns False otherwise.

    Note: Never log actual secret values, only variable names.
    """
    try:
        settings = SchedulingSettings()
    except Exception as e:
        logger.error(f"Environment validation failed: {e}")
        return False

    missing = [
        name for name in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY")
        if not getattr(settings, name)
    ]
    if missing:
        logger.warning(f"Missing configuration: {', '.join(missing)} (using in-memory waitlist store)")
        return False

    logger.info("Environment validation passed")
    return True


def get_redis_client(settings: Optional[SchedulingSettings] = None) -> Optional[Redis]:
    """
    Get configured Redis client with optimized settings

    Returns:
        Redis client, or None when REDIS_URL is not configured
    """
    settings = settings or get_settings()
    if not settings.REDIS_URL:
        return None

    return Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,  # Automatically decode responses to strings
        socket_connect_timeout=5,  # 5 second connection timeout
        socket_timeout=5,  # 5 second operation timeout
        retry_on_timeout=True,  # Retry operations that timeout
        health_check_interval=30  # Health check every 30 seconds
    )
