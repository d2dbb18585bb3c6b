"""Shared fixtures: storage backends and API clients bound to them."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from server.database import create_database_engine, init_database
from server.main import app
from server.storage import BaseStorage, MemStorage, SQLStorage, get_storage

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


def _sql_storage() -> SQLStorage:
    engine = create_database_engine("sqlite:///:memory:")
    assert init_database(engine)
    return SQLStorage(engine)


@pytest.fixture(params=["memory", "database"])
def storage(request) -> BaseStorage:
    """Every storage-level test runs against both backends."""
    if request.param == "memory":
        return MemStorage()
    return _sql_storage()


@pytest.fixture
def client(storage: BaseStorage):
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def session_payload(start: str = "2024-01-15T10:00:00Z", **fields) -> dict:
    return {"startTime": start, **fields}


def metric_payload(session_id: str, timestamp: str = "2024-01-15T10:00:01Z", **fields) -> dict:
    payload = {
        "sessionId": session_id,
        "timestamp": timestamp,
        "attentionScore": 100,
        "eyeOpenness": 0.3,
        "blinkDetected": 0,
        "gazeDirection": "center",
        "headYaw": 0,
        "headPitch": 0,
    }
    payload.update(fields)
    return payload
