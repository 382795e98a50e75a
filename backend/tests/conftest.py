import pytest
import pytest_asyncio
import sys
import os
from typing import Dict

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from hospitality import config
from hospitality.main import create_app
from hospitality.realtime import ChangeFeed
from hospitality.storage import InMemoryStorage
import httpx
from httpx import ASGITransport


@pytest.fixture(autouse=True)
def dev_environment(monkeypatch):
    """Staff join restaurants by id, which only dev signup allows."""
    monkeypatch.setattr(config, "ENVIRONMENT", "dev")


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def storage(feed):
    """Fresh in-memory storage wired to the test's change feed."""
    storage = InMemoryStorage(feed=feed)
    yield storage
    storage.clear()


@pytest.fixture
def app(storage, feed):
    """A new app per test; nothing is shared between tests."""
    return create_app(storage=storage, feed=feed)


@pytest_asyncio.fixture
async def async_client(app):
    """Create async HTTP client for testing."""
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def login(client, username: str, password: str = "secret123") -> Dict[str, str]:
    response = await client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return auth_headers(response.json()["access_token"])


async def signup_owner(client, username: str = "owner", restaurant_name: str = "Test Bistro") -> Dict:
    response = await client.post("/api/auth/signup", json={
        "username": username,
        "password": "secret123",
        "restaurant_name": restaurant_name,
    })
    assert response.status_code == 200, response.text
    data = response.json()
    return {
        "id": data["id"],
        "restaurant_id": data["restaurant_id"],
        "headers": await login(client, username),
    }


async def add_staff(client, restaurant_id: str, username: str, role: str) -> Dict:
    response = await client.post("/api/auth/signup", json={
        "username": username,
        "password": "secret123",
        "restaurant_id": restaurant_id,
        "role": role,
    })
    assert response.status_code == 200, response.text
    return {
        "id": response.json()["id"],
        "restaurant_id": restaurant_id,
        "headers": await login(client, username),
    }


@pytest_asyncio.fixture
async def owner(async_client):
    return await signup_owner(async_client)


@pytest_asyncio.fixture
async def kitchen(async_client, owner):
    return await add_staff(async_client, owner["restaurant_id"], "chef", "kitchen")


@pytest_asyncio.fixture
async def cashier(async_client, owner):
    return await add_staff(async_client, owner["restaurant_id"], "till", "cashier")


@pytest_asyncio.fixture
async def menu(async_client, owner) -> Dict[str, str]:
    """Pizza 250, Coke 60, Pasta 199.99 -> name: id."""
    ids = {}
    for name, price in (("Pizza", 250), ("Coke", 60), ("Pasta", 199.99)):
        response = await async_client.post(
            "/api/menu", json={"name": name, "price": price, "category": "mains"}, headers=owner["headers"]
        )
        assert response.status_code == 201, response.text
        ids[name] = response.json()["id"]
    return ids


async def place_order(client, staff: Dict, lines, **fields) -> Dict:
    payload = {"items": lines, **fields}
    response = await client.post("/api/orders", json=payload, headers=staff["headers"])
    assert response.status_code == 201, response.text
    return response.json()
