"""Tests for authenticating real-time connections."""

import pytest
from fastapi import WebSocketDisconnect

from darna_auth.application.services.connection_auth import ConnectionAuthenticator
from darna_auth.domain.errors import TokenInvalid, UserInactive

from .conftest import ALICE


@pytest.mark.asyncio
async def test_authenticator_returns_identity(auth_service):
    registered = await auth_service.register(**ALICE)
    login = await auth_service.login(ALICE["email"], ALICE["password"])

    identity = await ConnectionAuthenticator(auth_service).authenticate(login.access_token)

    assert identity.user_id == registered["id"]
    assert identity.name == "Alice Martin"
    assert identity.email == ALICE["email"]


@pytest.mark.asyncio
async def test_authenticator_requires_token(auth_service):
    with pytest.raises(TokenInvalid) as exc_info:
        await ConnectionAuthenticator(auth_service).authenticate(None)

    assert exc_info.value.message == "Token required."


@pytest.mark.asyncio
async def test_authenticator_rejects_refresh_token(auth_service):
    await auth_service.register(**ALICE)
    login = await auth_service.login(ALICE["email"], ALICE["password"])

    with pytest.raises(TokenInvalid):
        await ConnectionAuthenticator(auth_service).authenticate(login.refresh_token)


@pytest.mark.asyncio
async def test_authenticator_rejects_deactivated_user(auth_service, store):
    await auth_service.register(**ALICE)
    login = await auth_service.login(ALICE["email"], ALICE["password"])
    user = store.get_user_by_email(ALICE["email"])
    user.is_active = False
    store.update_user(user)

    with pytest.raises(UserInactive):
        await ConnectionAuthenticator(auth_service).authenticate(login.access_token)


def test_websocket_handshake_with_query_token(client):
    client.post("/api/auth/register", json={**ALICE})
    token = client.post(
        "/api/auth/login", json={"email": ALICE["email"], "password": ALICE["password"]}
    ).json()["access_token"]

    with client.websocket_connect(f"/ws/session?token={token}") as websocket:
        message = websocket.receive_json()

    assert message["type"] == "connected"
    assert message["user"]["email"] == ALICE["email"]
    assert message["user"]["name"] == "Alice Martin"


def test_websocket_handshake_with_bearer_header(client):
    client.post("/api/auth/register", json={**ALICE})
    token = client.post(
        "/api/auth/login", json={"email": ALICE["email"], "password": ALICE["password"]}
    ).json()["access_token"]

    with client.websocket_connect("/ws/session", headers={"Authorization": f"Bearer {token}"}) as websocket:
        assert websocket.receive_json()["type"] == "connected"


@pytest.mark.parametrize("path", ["/ws/session", "/ws/session?token=not-a-jwt"])
def test_websocket_rejects_missing_or_bad_token(client, path):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(path) as websocket:
            websocket.receive_json()

    assert exc_info.value.code == 1008
