"""Pytest configuration and fixtures."""

import os
import secrets

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
os.environ["STORAGE_BACKEND"] = "memory"
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")

from app.main import app  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from app.services.memory import build_memory_services  # noqa: E402
from app.sync.coordinator import SyncCoordinator  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

# Use clearly invalid test IDs that cannot collide with production IDs
TEST_USER = "usr_TEST_ONLY_000000"
OTHER_USER = "usr_TEST_ONLY_999999"


@pytest.fixture(autouse=True)
def fresh_state():
    """Empty in-memory storage and no rate limiting for every test."""
    app.state.services = build_memory_services()
    limiter.enabled = False
    yield
    limiter.enabled = True
    app.state.services = None


@pytest.fixture
def client():
    """Create a test client."""
    return TestClient(app)


def _headers(user_id: str) -> dict:
    from app.auth import create_access_token
    from app.config import get_settings

    token = create_access_token(user_id, get_settings())
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    """Create auth headers with a test token."""
    return _headers(TEST_USER)


@pytest.fixture
def other_headers():
    """Auth headers for a second user, for ownership checks."""
    return _headers(OTHER_USER)


@pytest.fixture
def services():
    return build_memory_services()


@pytest.fixture
def coordinator(services):
    return SyncCoordinator(services)


@pytest.fixture
def reptile_payload():
    return {
        "name": "Monty",
        "species": "Python regius",
        "morph": "Pastel",
        "sex": "MALE",
        "acquisitionDate": "2023-04-01",
    }


@pytest.fixture
def feeding_payload():
    def _make(reptile_id: str, **overrides):
        payload = {
            "reptileId": reptile_id,
            "date": "2024-05-01T18:00:00Z",
            "preyType": "rat",
            "preySize": "small",
            "preySource": "FROZEN_THAWED",
            "accepted": True,
        }
        payload.update(overrides)
        return payload

    return _make
