"""
Pytest fixtures for the in-memory store, the washQ services, the HTTP client
and authenticated accounts.

Every test gets a fresh MemoryDocumentStore, so no database is needed and
tests are isolated by construction.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("STORE_BACKEND", "memory")

from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from washq.main import app
from washq.api.deps import get_app_state
from washq.core.config import Settings
from washq.core.security import create_access_token, hash_password
from washq.infrastructure.document_store import IDENTITIES, MACHINES, USERS
from washq.infrastructure.memory_store import MemoryDocumentStore
from washq.schemas.user import Role, User
from washq.services.app_state import WashQ
from washq.services.interfaces.local_lock import LocalLockStrategy


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        STORE_BACKEND="memory",
        REDIS_ENABLED=False,
        START_WASH_DELAY_SECONDS=0.05,
        WASH_CLOCK_ENABLED=False,
    )


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def washq(store: MemoryDocumentStore, test_settings: Settings) -> WashQ:
    return WashQ(store, locks=LocalLockStrategy(), settings=test_settings, use_cache=False)


@pytest_asyncio.fixture(scope="function")
async def client(washq: WashQ) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the app state with the test services."""
    app.dependency_overrides[get_app_state] = lambda: washq

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def seed_machine(store, machine_id: str, name: str = None, status: str = "available",
                       queue_count: int = None, time_remaining: int = None) -> str:
    await store.create(MACHINES, {
        "name": name or machine_id.upper(),
        "status": status,
        "queue_count": queue_count,
        "time_remaining": time_remaining,
        "created_at": datetime.now(timezone.utc),
    }, machine_id)
    return machine_id


async def seed_user(store, user_id: str, role: Role = Role.USER, email: str = None) -> User:
    user = User(
        id=user_id,
        email=email or f"{user_id}@example.com",
        role=role,
        created_at=datetime.now(timezone.utc),
    )
    await store.create(USERS, user.model_dump(), user_id)
    return user


async def seed_account(store, user_id: str, role: Role = Role.USER) -> dict:
    """User + identity record; returns bearer headers for that account."""
    user = await seed_user(store, user_id, role)
    await store.create(IDENTITIES, {
        "email": user.email,
        "hashed_password": hash_password("testpassword123"),
    }, user_id)
    token = create_access_token(data={"sub": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def admin(store) -> User:
    return await seed_user(store, "admin", Role.ADMIN)


@pytest_asyncio.fixture
async def auth_headers(store) -> dict:
    """Authorization headers for the regular user `u1`."""
    return await seed_account(store, "u1")


@pytest_asyncio.fixture
async def admin_headers(store) -> dict:
    return await seed_account(store, "admin-1", Role.ADMIN)


@pytest_asyncio.fixture
async def machines(store) -> dict[str, str]:
    """m1 available, m2 running with 15 minutes left, m5 out of order."""
    await seed_machine(store, "m1", "Washer 1")
    await seed_machine(store, "m2", "Washer 2", status="running", time_remaining=15)
    await seed_machine(store, "m5", "Washer 5", status="out-of-order")
    return {"m1": "m1", "m2": "m2", "m5": "m5"}
