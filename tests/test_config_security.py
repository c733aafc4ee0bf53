from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from app.core.config import Settings


def test_default_secret_key_allowed_in_development() -> None:
    settings = Settings(_env_file=None, app_env="development", secret_key="change-me")
    assert settings.secret_key == "change-me"
    assert settings.calendar_webhook_signing_key is None


def test_default_secret_key_rejected_in_production() -> None:
    with pytest.raises(ValidationError):
        Settings(
            _env_file=None,
            app_env="production",
            secret_key="change-me",
            calendar_webhook_signing_key="whsec-value",
        )


def test_placeholder_secret_key_prefix_rejected_in_production() -> None:
    with pytest.raises(ValidationError):
        Settings(
            _env_file=None,
            app_env="prod",
            secret_key="change-me-in-production",
            calendar_webhook_signing_key="whsec-value",
        )


def test_webhook_signing_key_required_in_production() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, app_env="production", secret_key="super-secure-value")


def test_blank_webhook_signing_key_counts_as_unset() -> None:
    settings = Settings(_env_file=None, calendar_webhook_signing_key="   ")
    assert settings.calendar_webhook_signing_key is None


def test_custom_secrets_allowed_in_production() -> None:
    settings = Settings(
        _env_file=None,
        app_env="production",
        secret_key="super-secure-value",
        calendar_webhook_signing_key="whsec-value",
    )
    assert settings.secret_key == "super-secure-value"


def test_scheduling_defaults() -> None:
    settings = Settings(_env_file=None)
    assert settings.booking_hold_minutes == 15
    assert settings.default_slot_duration_minutes == 60
    assert settings.scheduling_zone == ZoneInfo("UTC")


def test_unknown_scheduling_timezone_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, scheduling_timezone="Mars/Olympus_Mons")


def test_hold_minutes_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, booking_hold_minutes=0)
