"""Shared fixtures for the test-suite."""

import asyncio
import os

# Single-shot match confirmation keeps swipe tests deterministic
os.environ.setdefault("MATCH_CONFIRM_TIMEOUT", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from studyswipe.main import app, get_store
from studyswipe.matching import insert_match
from studyswipe.memory import MemoryStore
from studyswipe.profiles import create_profile
from studyswipe.schemas import Direction
from studyswipe.settings import Settings
from studyswipe.swipes import record_swipe


# ============================================================================
# Store
# ============================================================================

@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with pollers ticking fast enough for tests."""
    return Settings(
        reconcile_interval=0.02,
        reconcile_overlap=5.0,
        unread_poll_interval=0.02,
        request_timeout=1.0,
        match_confirm_timeout=0,
    )


# ============================================================================
# Profiles and matches
# ============================================================================

@pytest.fixture
async def users(store):
    """Three profiles, created oldest to newest."""
    await create_profile(store, "alice", "Alice", school="MIT", subjects=["Mathematics"])
    await create_profile(store, "bob", "Bob", major="Physics", subjects=["Physics", "Mathematics"])
    await create_profile(store, "carol", "Carol", subjects=["Biology"])
    return ["alice", "bob", "carol"]


@pytest.fixture
async def match(store, users):
    """A mutual match between alice and bob, with both likes recorded."""
    await record_swipe(store, "alice", "bob", Direction.LIKE)
    await record_swipe(store, "bob", "alice", Direction.LIKE)
    return await insert_match(store, "alice", "bob")


# ============================================================================
# Utilities
# ============================================================================

async def _eventually(predicate, timeout: float = 1.0, interval: float = 0.01):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def eventually():
    """Await until ``predicate()`` is true or fail after ``timeout`` seconds."""
    return _eventually


@pytest.fixture
def client(store):
    """API client with the in-memory store injected."""
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def as_user(user_id: str) -> dict:
    return {"X-User-Id": user_id}


@pytest.fixture
def headers():
    return as_user
