"""
Tests for authentication endpoints: login (with first-use registration), logout, me.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_login_creates_account(client: AsyncClient):
    """First login registers the email and returns a token."""
    response = await client.post("/api/v1/auth/login", json={
        "email": "new@dorm.edu",
        "password": "securepassword123",
    })
    assert response.status_code == 200
    data = response.json()
    assert data["access_token"]
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "new@dorm.edu"
    assert data["user"]["role"] == "user"
    assert data["user"]["active_booking"] is None
    assert "hashed_password" not in data["user"]  # Never expose password hash


@pytest.mark.asyncio
async def test_login_existing_account(client: AsyncClient):
    """Second login with the same password returns the same user."""
    first = await client.post("/api/v1/auth/login", json={
        "email": "again@dorm.edu",
        "password": "securepassword123",
    })
    second = await client.post("/api/v1/auth/login", json={
        "email": "again@dorm.edu",
        "password": "securepassword123",
    })
    assert second.status_code == 200
    assert second.json()["user"]["id"] == first.json()["user"]["id"]


@pytest.mark.asyncio
async def test_login_admin_role_not_granted(client: AsyncClient):
    """Requesting the admin role at login still creates a regular user."""
    response = await client.post("/api/v1/auth/login", json={
        "email": "sneaky@dorm.edu",
        "password": "securepassword123",
        "role": "admin",
    })
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "user"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient):
    """Wrong password for an existing account returns 401 wrong-password."""
    await client.post("/api/v1/auth/login", json={
        "email": "victim@dorm.edu",
        "password": "securepassword123",
    })
    response = await client.post("/api/v1/auth/login", json={
        "email": "victim@dorm.edu",
        "password": "wrongpassword",
    })
    assert response.status_code == 401
    assert response.json()["reason"] == "wrong-password"


@pytest.mark.asyncio
async def test_login_invalid_email(client: AsyncClient):
    """Malformed email returns 401 invalid-email."""
    response = await client.post("/api/v1/auth/login", json={
        "email": "not-an-email",
        "password": "securepassword123",
    })
    assert response.status_code == 401
    assert response.json()["reason"] == "invalid-email"


@pytest.mark.asyncio
async def test_login_weak_password(client: AsyncClient):
    """Password under 6 characters returns 401 weak-password."""
    response = await client.post("/api/v1/auth/login", json={
        "email": "weak@dorm.edu",
        "password": "123",
    })
    assert response.status_code == 401
    assert response.json()["reason"] == "weak-password"


@pytest.mark.asyncio
async def test_me(client: AsyncClient, auth_headers):
    """Bearer token resolves to the signed-in user."""
    response = await client.get("/api/v1/auth/me", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["id"] == "u1"


@pytest.mark.asyncio
async def test_me_unauthenticated(client: AsyncClient):
    """No token returns 401."""
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401
    assert response.json()["reason"] == "not-authenticated"


@pytest.mark.asyncio
async def test_me_invalid_token(client: AsyncClient):
    """Garbage token returns 401 invalid-token."""
    response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["reason"] == "invalid-token"


@pytest.mark.asyncio
async def test_logout(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/auth/logout", headers=auth_headers)
    assert response.status_code == 204
