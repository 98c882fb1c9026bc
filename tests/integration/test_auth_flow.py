"""End-to-end HTTP flow over httpx.AsyncClient and the ASGI app."""

import pytest
from httpx import ASGITransport, AsyncClient

from identityhub.main import create_app

from conftest import TEST_PASSWORD


@pytest.fixture
async def async_client(settings, store, notifier):
    """Create async HTTP client over an in-memory app."""
    app = create_app(settings=settings, store=store, notifier=notifier)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_alice_full_lifecycle(async_client, notifier):
    """Register, confirm, login, rotate, change password, logout."""
    registered = await async_client.post(
        "/auth/register",
        json={
            "email": "alice@example.com",
            "password": TEST_PASSWORD,
            "confirm_password": TEST_PASSWORD,
            "first_name": "Alice",
        },
    )
    assert registered.status_code == 201
    user_id = registered.json()["user"]["id"]

    confirmed = await async_client.get(
        "/auth/confirm-email",
        params={"userId": user_id, "token": notifier.confirmations["alice@example.com"]},
    )
    assert confirmed.status_code == 200

    login = (
        await async_client.post(
            "/auth/login", json={"email": "alice@example.com", "password": TEST_PASSWORD}
        )
    ).json()
    assert login["user"]["email_confirmed"] is True
    headers = {"Authorization": f"Bearer {login['access_token']}"}

    rotated = await async_client.post(
        "/auth/refresh-token", json={"refresh_token": login["refresh_token"]}
    )
    replayed = await async_client.post(
        "/auth/refresh-token", json={"refresh_token": login["refresh_token"]}
    )
    assert rotated.status_code == 200
    assert replayed.status_code == 401

    changed = await async_client.post(
        "/auth/change-password",
        json={"current_password": TEST_PASSWORD, "new_password": "N3wPassword"},
        headers=headers,
    )
    assert changed.status_code == 200

    # The access token issued before the change is still honoured
    profile = await async_client.get("/user/profile", headers=headers)
    assert profile.status_code == 200

    old_password = await async_client.post(
        "/auth/login", json={"email": "alice@example.com", "password": TEST_PASSWORD}
    )
    new_password = await async_client.post(
        "/auth/login", json={"email": "alice@example.com", "password": "N3wPassword"}
    )
    assert old_password.status_code == 401
    assert new_password.status_code == 200

    logout = await async_client.post("/auth/logout", headers=headers)
    assert logout.status_code == 200

    after_logout = await async_client.post(
        "/auth/refresh-token", json={"refresh_token": rotated.json()["refresh_token"]}
    )
    assert after_logout.status_code == 401


@pytest.mark.asyncio
async def test_forgot_and_reset_password(async_client, notifier):
    await async_client.post(
        "/auth/register",
        json={"email": "bob@example.com", "password": TEST_PASSWORD, "confirm_password": TEST_PASSWORD},
    )

    nobody = await async_client.post("/auth/forgot-password", json={"email": "nobody@example.com"})
    bob = await async_client.post("/auth/forgot-password", json={"email": "bob@example.com"})
    assert nobody.json() == bob.json()
    assert nobody.json()["success"] is True

    reset = await async_client.post(
        "/auth/reset-password",
        json={
            "email": "bob@example.com",
            "token": notifier.resets["bob@example.com"],
            "new_password": "Fresh1Password",
        },
    )
    assert reset.status_code == 200

    login = await async_client.post(
        "/auth/login", json={"email": "bob@example.com", "password": "Fresh1Password"}
    )
    assert login.status_code == 200
