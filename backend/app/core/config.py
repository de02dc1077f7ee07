# backend/app/core/config.py
from functools import lru_cache
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    """
    Runtime configuration, read from the environment (and backend/.env).

    Secrets have no defaults: constructing Settings without STRIPE_SECRET_KEY
    fails, so a misconfigured deployment refuses to start instead of running
    against a fallback key.
    """

    app_name: str = Field(default=BRAND_NAME, description="Display name used in logs and docs")
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Database
    database_url: str = Field(
        default="sqlite:///./thoughtcloud.db",
        description="SQLAlchemy database URL (authoritative store for all mutations)",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Redis (optional; per-session transition locks)
    redis_url: Optional[str] = Field(
        default=None, description="Redis URL for distributed session locks"
    )
    session_lock_ttl_seconds: int = Field(
        default=90, ge=1, description="TTL of a per-session transition lock"
    )

    # Stripe Configuration
    stripe_secret_key: SecretStr = Field(
        ...,
        description="Stripe secret key for backend API calls",
    )
    stripe_publishable_key: str = Field(
        default="", description="Stripe publishable key for frontend"
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe webhook signing secret; empty disables signature verification",
    )
    stripe_currency: str = Field(default="usd", description="Default currency for payments")
    stripe_timeout_seconds: int = Field(
        default=8, ge=1, description="HTTP timeout for Stripe API calls"
    )
    stripe_connect_country: str = Field(
        default="US", description="Default country for new connected accounts"
    )

    platform_fee_percentage: int = Field(
        default=20, ge=0, le=100, description="Platform fee percentage (20 = 20%)"
    )

    # Idempotent read retries (balance, account lookups)
    read_retry_attempts: int = Field(default=3, ge=1, le=10)
    read_retry_backoff_seconds: float = Field(default=0.25, ge=0)

    # Authorization expiry sweep; unset disables it
    authorization_ttl_minutes: Optional[int] = Field(
        default=None,
        ge=1,
        description="Minutes an uncaptured authorization may hold a slot before the sweep voids it",
    )
    expiry_sweep_interval_seconds: int = Field(
        default=60, ge=1, description="Poll interval of the authorization expiry worker"
    )

    frontend_url: str = Field(
        default="http://localhost:3000", description="Frontend origin for onboarding redirects"
    )
    meeting_link_base_url: str = Field(
        default="https://meet.google.com", description="Base URL for generated meeting links"
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("stripe_secret_key")
    @classmethod
    def _require_stripe_key(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("STRIPE_SECRET_KEY must be set")
        return value

    @field_validator("stripe_currency", "stripe_connect_country", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @model_validator(mode="after")
    def _warn_on_unverified_webhooks(self) -> "Settings":
        if not self.webhook_secret:
            if self.environment == "production":
                raise ValueError("STRIPE_WEBHOOK_SECRET must be set in production")
            logger.warning(
                "STRIPE_WEBHOOK_SECRET not configured; webhook signatures will not be verified"
            )
        return self

    @property
    def webhook_secret(self) -> str:
        """Webhook signing secret as plain text ('' when unset)."""
        return self.stripe_webhook_secret.get_secret_value().strip()

    @property
    def stripe_api_key(self) -> str:
        return self.stripe_secret_key.get_secret_value()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; raises when required variables are missing."""
    return Settings()  # type: ignore[call-arg]
