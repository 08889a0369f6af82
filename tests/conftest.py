import pytest

from app import security


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    security.reset_rate_limits()
    yield
    security.reset_rate_limits()


@pytest.fixture
def auth_config(monkeypatch):
    """Configure socket auth and the ingest key for one test."""
    monkeypatch.setattr(security, "JWT_SECRET", "test-secret")
    monkeypatch.setattr(security, "JWT_ALGORITHM", "HS256")
    monkeypatch.setattr(security, "PROGRESS_INGEST_KEY", "ingest-key")
    return {"secret": "test-secret", "ingest_key": "ingest-key"}
