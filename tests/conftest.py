"""Shared fixtures: an in-memory Mongo database, a store and an API client.

``mongomock`` stands in for the MongoDB server, so nothing here touches a real
database. "Today" is pinned to Friday 2024-01-05 for every API test.
"""

from __future__ import annotations

import os
from datetime import date

import mongomock
import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DEV_MODE", "true")

import main  # noqa: E402
from database import get_db  # noqa: E402
from store import HabitStore  # noqa: E402

TODAY = date(2024, 1, 5)


@pytest.fixture
def db():
    return mongomock.MongoClient()["habit_nudge_test"]


@pytest.fixture
def store(db):
    return HabitStore(db, max_attempts=3, referral_xp=20)


@pytest.fixture
def alice(store):
    """A registered user with no habits."""
    store.create_user("alice", name="Alice", email="alice@example.com", password_hash="x")
    return "alice"


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def client(db, today):
    main.app.dependency_overrides[get_db] = lambda: db
    main.app.dependency_overrides[main.get_today] = lambda: today
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register and log in a user, returning auth headers."""

    def _register(user_id: str = "alice", password: str = "s3cret", **extra) -> dict:
        body = {
            "name": user_id.title(),
            "email": f"{user_id}@example.com",
            "userId": user_id,
            "password": password,
        }
        body.update(extra)
        resp = client.post("/auth/register", json=body)
        assert resp.status_code == 201, resp.text
        login = client.post("/auth/login", json={"userId": user_id, "password": password})
        assert login.status_code == 200, login.text
        return {"Authorization": f"Bearer {login.json()['access_token']}"}

    return _register
