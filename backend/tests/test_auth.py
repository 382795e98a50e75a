"""Tests for auth signup/login, profile lookup and admin enforcement."""

import pytest
import pytest_asyncio
import httpx
from httpx import ASGITransport

from hospitality import config
from hospitality.main import create_app
from hospitality.realtime import ChangeFeed
from hospitality.storage.sqlalchemy_adapter import SQLAlchemyStorage

from conftest import add_staff, auth_headers, login, signup_owner


@pytest.fixture
def auth_storage(tmp_path):
    """Create SQLAlchemyStorage with file-backed database for auth tests."""
    db_path = tmp_path / "auth.db"
    storage = SQLAlchemyStorage(f"sqlite:///{db_path}")
    yield storage
    storage.close()


@pytest_asyncio.fixture
async def auth_client(auth_storage):
    """Async HTTP client for an app persisting to SQLite."""
    app = create_app(storage=auth_storage, feed=ChangeFeed())
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_signup_login_flow(auth_client):
    signup_response = await auth_client.post("/api/auth/signup", json={
        "username": "owner_user",
        "password": "secret123",
        "restaurant_name": "Curry House",
    })
    assert signup_response.status_code == 200
    signup_data = signup_response.json()
    assert signup_data["username"] == "owner_user"
    assert signup_data["role"] == "owner"
    assert signup_data["restaurant_id"]

    login_response = await auth_client.post("/api/auth/login", json={
        "username": "owner_user",
        "password": "secret123",
    })
    assert login_response.status_code == 200
    login_data = login_response.json()
    assert "access_token" in login_data
    assert login_data["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_me_reports_role_and_components(auth_client):
    owner = await signup_owner(auth_client)
    await add_staff(auth_client, owner["restaurant_id"], "chef", "kitchen")

    response = await auth_client.get("/api/auth/me", headers=owner["headers"])
    assert response.status_code == 200
    assert response.json()["role"] == "owner"
    assert response.json()["actor_kind"] == "manager"
    assert "financial" in response.json()["components"]

    response = await auth_client.get("/api/auth/me", headers=await login(auth_client, "chef"))
    data = response.json()
    assert data["role"] == "kitchen"
    assert data["actor_kind"] == "kitchen"
    assert data["components"] == ["kitchen"]


@pytest.mark.asyncio
async def test_duplicate_username_rejected(async_client):
    await signup_owner(async_client)
    response = await async_client.post("/api/auth/signup", json={
        "username": "owner", "password": "other", "restaurant_name": "Second",
    })
    assert response.status_code == 400
    assert response.json()["error"] == "username already exists"


@pytest.mark.asyncio
async def test_bad_credentials(async_client):
    await signup_owner(async_client)
    response = await async_client.post("/api/auth/login", json={"username": "owner", "password": "wrong"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_missing_and_invalid_token(async_client):
    response = await async_client.get("/api/menu")
    assert response.status_code == 401
    assert response.json() == {"error": "Missing or invalid authorization header"}

    response = await async_client.get("/api/menu", headers=auth_headers("not-a-jwt"))
    assert response.status_code == 401
    assert response.json() == {"error": "Authentication failed"}


@pytest.mark.asyncio
async def test_profile_without_restaurant_is_forbidden(async_client):
    await async_client.post("/api/auth/signup", json={"username": "drifter", "password": "secret123"})
    headers = await login(async_client, "drifter")

    response = await async_client.get("/api/menu", headers=headers)
    assert response.status_code == 403
    assert response.json()["error"] == "No restaurant associated with user"


@pytest.mark.asyncio
async def test_join_unknown_role_or_restaurant(async_client, owner):
    response = await async_client.post("/api/auth/signup", json={
        "username": "ghost", "password": "secret123",
        "restaurant_id": owner["restaurant_id"], "role": "sommelier",
    })
    assert response.status_code == 404

    response = await async_client.post("/api/auth/signup", json={
        "username": "ghost", "password": "secret123",
        "restaurant_id": "00000000-0000-0000-0000-000000000000",
    })
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_joining_restaurant_is_dev_only(async_client, owner, monkeypatch):
    monkeypatch.setattr(config, "ENVIRONMENT", "production")
    response = await async_client.post("/api/auth/signup", json={
        "username": "late", "password": "secret123",
        "restaurant_id": owner["restaurant_id"], "role": "cashier",
    })
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_cannot_join_as_owner_or_admin(async_client, owner):
    for username, role in (("usurper", "owner"), ("sneaky", "admin")):
        response = await async_client.post("/api/auth/signup", json={
            "username": username, "password": "secret123",
            "restaurant_id": owner["restaurant_id"], "role": role,
        })
        assert response.status_code == 403
        assert response.json()["error"] == f"Cannot join with the '{role}' role"

        response = await async_client.post("/api/auth/login", json={"username": username, "password": "secret123"})
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_require_admin_blocks_non_admin(async_client, owner, cashier):
    response = await async_client.post(
        "/api/menu", json={"name": "Tea", "price": 20}, headers=cashier["headers"]
    )
    assert response.status_code == 403
    assert response.json()["error"] == "Insufficient permissions - admin or owner role required"


@pytest.mark.asyncio
async def test_require_admin_allows_admin(async_client, owner):
    response = await async_client.post(
        "/api/menu", json={"name": "Tea", "price": 20}, headers=owner["headers"]
    )
    assert response.status_code == 201
    assert response.json()["name"] == "Tea"
