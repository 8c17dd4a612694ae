from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient

from tasklist_api.main import create_app
from tasklist_api.repositories import InMemoryDocumentStore
from tasklist_api.settings import Settings


def make_settings(**overrides) -> Settings:
    values = dict(
        persistence_backend="memory",
        sqlite_db_path="./data/tasks.db",
        cors_allow_origins=["*"],
        enable_token_auth=False,
        auth_token_secret=None,
        auth_token_ttl_seconds=3600,
        log_level="WARNING",
    )
    values.update(overrides)
    return Settings(**values)


def ticking_clock(start: datetime = datetime(2024, 1, 1, 9, 0, 0), step: timedelta = timedelta(seconds=1)) -> Callable[[], datetime]:
    """A clock that advances by `step` on every call, so creation order is unambiguous."""
    state = {"now": start}

    def _now() -> datetime:
        value = state["now"]
        state["now"] = value + step
        return value

    return _now


@pytest.fixture()
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(clock=ticking_clock())


@pytest.fixture()
def client(store: InMemoryDocumentStore) -> Iterator[TestClient]:
    app = create_app(settings=make_settings(), store=store)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def user_id(client: TestClient) -> str:
    res = client.post("/api/v1/users/", json={"username": "alice"})
    assert res.status_code == 201
    return res.json()["id"]


@pytest.fixture()
def headers(user_id: str) -> dict:
    return {"X-User-Id": user_id}
