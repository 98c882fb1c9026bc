"""Unit tests for Settings tier defaults and validation."""

import pytest
from pydantic import ValidationError

from identityhub.config import DEVELOPMENT_SECRET_KEY, Settings

from conftest import TEST_JWT_SECRET, make_settings


class TestTierDefaults:
    def test_development_defaults(self):
        settings = make_settings()

        assert settings.access_token_expiry_minutes == 60
        assert settings.max_failed_access_attempts == 5
        assert settings.lockout_duration_minutes == 5
        assert settings.required_password_length == 6
        assert settings.password_requires_non_alphanumeric is False
        assert settings.email_confirmation_required is False

    def test_production_defaults(self):
        settings = make_settings(environment="production")

        assert settings.access_token_expiry_minutes == 15
        assert settings.max_failed_access_attempts == 3
        assert settings.lockout_duration_minutes == 30
        assert settings.required_password_length == 8
        assert settings.password_requires_non_alphanumeric is True
        assert settings.email_confirmation_required is True

    def test_staging_expiry(self):
        assert make_settings(environment="staging").access_token_expiry_minutes == 30

    def test_explicit_values_override_tier(self):
        settings = make_settings(
            environment="production",
            lockout_max_attempts=10,
            password_min_length=12,
            require_email_confirmation=False,
        )

        assert settings.max_failed_access_attempts == 10
        assert settings.required_password_length == 12
        assert settings.email_confirmation_required is False


class TestValidation:
    def test_production_rejects_development_secret(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, environment="production", jwt_secret_key=DEVELOPMENT_SECRET_KEY)

    def test_production_accepts_real_secret(self):
        assert make_settings(environment="production").jwt_secret_key == TEST_JWT_SECRET

    def test_settings_are_frozen(self):
        settings = make_settings()
        with pytest.raises(ValidationError):
            settings.grpc_port = 1

    def test_environment_variables_are_read(self, monkeypatch):
        monkeypatch.setenv("GRPC_PORT", "6000")
        monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example")

        settings = Settings(_env_file=None)

        assert settings.grpc_port == 6000
        assert settings.allowed_origins_list == ["https://a.example", "https://b.example"]
