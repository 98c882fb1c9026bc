"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timezone
from typing import Generator
from uuid import uuid4

import bcrypt
import pytest

# Set test environment variables before importing app
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("GRPC_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-identityhub-unit-tests-0123456789")

from identityhub.config import Settings
from identityhub.models.auth import RegisterRequest
from identityhub.models.user import User
from identityhub.services.auth_service import AuthService
from identityhub.services.password_service import PasswordService
from identityhub.services.token_service import TokenService
from identityhub.store.memory import InMemoryCredentialStore

TEST_JWT_SECRET = "test-secret-key-for-identityhub-unit-tests-0123456789"
TEST_PASSWORD = "Passw0rd!"

_real_gensalt = bcrypt.gensalt


class RecordingNotifier:
    """Notifier double that keeps the last token sent to each address."""

    def __init__(self):
        self.confirmations: dict[str, str] = {}
        self.resets: dict[str, str] = {}

    async def send_email_confirmation(self, user, confirmation_token: str) -> None:
        self.confirmations[user.email] = confirmation_token

    async def send_password_reset(self, user, reset_token: str) -> None:
        self.resets[user.email] = reset_token


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch) -> None:
    """Use the minimum bcrypt cost so hashing does not dominate test time."""
    monkeypatch.setattr(bcrypt, "gensalt", lambda: _real_gensalt(rounds=4))


def make_settings(**overrides) -> Settings:
    """Development settings isolated from any local .env file."""
    values = {
        "environment": "development",
        "store_backend": "memory",
        "grpc_enabled": False,
        "jwt_secret_key": TEST_JWT_SECRET,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def tokens(settings) -> TokenService:
    return TokenService(settings)


@pytest.fixture
def passwords(settings) -> PasswordService:
    return PasswordService(settings)


@pytest.fixture
def auth_service(store, tokens, passwords, notifier, settings) -> AuthService:
    """Orchestrator over the in-memory store."""
    return AuthService(store, tokens, passwords, notifier, settings)


@pytest.fixture
def register(auth_service):
    """Async helper registering a user and returning its profile."""

    async def _register(email: str = "alice@example.com", password: str = TEST_PASSWORD, **fields):
        result = await auth_service.register(
            RegisterRequest(email=email, password=password, confirm_password=password, **fields)
        )
        assert result.success, result.message
        return result.user

    return _register


@pytest.fixture
def seed_user(store, passwords):
    """Async helper inserting a user straight into the store.

    Covers account states no public operation produces, such as a
    deactivated, locked or Admin account.
    """

    async def _seed_user(email: str = "alice@example.com", password: str = TEST_PASSWORD, **fields):
        user = User(
            id=uuid4(),
            email=email,
            username=email,
            password_hash=await passwords.hash_password(password),
            created_at=datetime.now(timezone.utc),
            **fields,
        )
        return await store.create_user(user)

    return _seed_user


@pytest.fixture
def client(settings, store, notifier) -> Generator:
    """TestClient over an app wired to the in-memory store.

    The lifespan runs, but with gRPC disabled and no database.
    """
    from fastapi.testclient import TestClient

    from identityhub.main import create_app

    app = create_app(settings=settings, store=store, notifier=notifier)
    with TestClient(app) as tc:
        yield tc
