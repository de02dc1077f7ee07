"""Tests for Settings validation."""

from pydantic import ValidationError
import pytest

from app.core.config import Settings


def test_stripe_secret_key_is_required(monkeypatch):
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_blank_stripe_secret_key_is_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, stripe_secret_key="   ")


def test_production_requires_webhook_secret():
    with pytest.raises(ValidationError):
        Settings(
            _env_file=None,
            environment="production",
            stripe_secret_key="sk_live_x",
            stripe_webhook_secret="",
        )


def test_defaults():
    settings = Settings(_env_file=None, stripe_secret_key="sk_test_x", redis_url=None)

    assert settings.platform_fee_percentage == 20
    assert settings.stripe_currency == "usd"
    assert settings.stripe_timeout_seconds == 8
    assert settings.authorization_ttl_minutes is None
    assert settings.stripe_api_key == "sk_test_x"
    assert settings.webhook_secret == ""
    # Secrets never render in repr
    assert "sk_test_x" not in repr(settings)


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_env")
    monkeypatch.setenv("PLATFORM_FEE_PERCENTAGE", "15")

    settings = Settings(_env_file=None)

    assert settings.stripe_api_key == "sk_test_env"
    assert settings.platform_fee_percentage == 15
