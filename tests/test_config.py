"""
tests/test_config.py -- Unit tests for core/config.py (Settings).

Settings is instantiated directly rather than through get_settings() so the
cached application singleton is never disturbed.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

STRONG_KEY = "s" * 40


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("DEBUG", "SECRET_KEY", "APP_ENV", "ACCESS_TOKEN_EXPIRE_SECONDS"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings(_env_file=None, secret_key=STRONG_KEY)
    assert settings.environment == "development"
    assert settings.access_token_expire_seconds == 900
    assert settings.refresh_token_expire_seconds == 7 * 24 * 3600
    assert settings.identity_provider == "jwt"
    assert settings.secure_cookies is False


def test_debug_generates_secret():
    settings = Settings(_env_file=None, debug=True)
    assert len(settings.secret_key) >= 32


def test_missing_secret_outside_debug():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None)


def test_short_secret_rejected():
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(_env_file=None, secret_key="too-short")


def test_non_positive_ttl_rejected():
    with pytest.raises(ValidationError, match="positive"):
        Settings(_env_file=None, secret_key=STRONG_KEY, access_token_expire_seconds=0)


def test_production_env_forces_secure_cookies(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    settings = Settings(_env_file=None, secret_key=STRONG_KEY)
    assert settings.environment == "production"
    assert settings.secure_cookies is True


def test_env_overrides_ttl(monkeypatch):
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_SECONDS", "60")
    assert Settings(_env_file=None, secret_key=STRONG_KEY).access_token_expire_seconds == 60


def test_reset_token_lifetime():
    assert Settings(_env_file=None, secret_key=STRONG_KEY).reset_token_expire_seconds == 3600
    with pytest.raises(ValidationError, match="positive"):
        Settings(_env_file=None, secret_key=STRONG_KEY, reset_token_expire_seconds=-5)
