import asyncio

import pytest
from jose import jwt
from starlette.requests import Request
from starlette.responses import Response

import app.api as api_module
from app import security
from app.routes import progress
from core.progress.hub import ConnectionHub

pytest.importorskip("httpx")
from fastapi.testclient import TestClient  # noqa: E402


@pytest.fixture
def fresh_hub(monkeypatch):
    hub = ConnectionHub()
    monkeypatch.setattr(progress, "hub", hub)
    return hub


def _token(user_id, secret="test-secret"):
    return jwt.encode({"userId": user_id}, secret, algorithm="HS256")


def _ingest(client, body, key="ingest-key"):
    return client.post("/internal/progress", json=body, headers={"X-Progress-Key": key})


def _progress_body(user_id="user-1", job_id="job-1"):
    return {
        "userId": user_id,
        "type": "scraping_progress",
        "data": {"jobId": job_id, "currentPage": 2, "maxPages": 4, "dataPoints": 17},
    }


def test_socket_auth_and_ingest_delivers_to_user(auth_config, fresh_hub):
    with TestClient(api_module.app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "auth", "token": _token("user-1")})
            ack = ws.receive_json()
            assert ack["type"] == "auth_ok"
            assert ack["data"] == {"userId": "user-1"}

            resp = _ingest(client, _progress_body())
            assert resp.status_code == 200
            assert resp.json() == {"delivered": 1}

            msg = ws.receive_json()
            assert msg["type"] == "scraping_progress"
            assert msg["data"] == {"jobId": "job-1", "currentPage": 2, "maxPages": 4, "dataPoints": 17}
            assert "timestamp" in msg

            resp = _ingest(client, _progress_body(user_id="someone-else"))
            assert resp.json() == {"delivered": 0}


def test_socket_rejects_bad_token(auth_config, fresh_hub):
    with TestClient(api_module.app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "auth", "token": _token("user-1", secret="wrong")})
            reply = ws.receive_json()
            assert reply["type"] == "auth_error"

            ws.send_text("not json")
            ws.send_json({"type": "pong"})

            clients = client.get("/internal/clients", headers={"X-Progress-Key": "ingest-key"}).json()["clients"]
            assert len(clients) == 1
            assert clients[0]["userId"] is None


def test_socket_auth_is_rate_limited(auth_config, fresh_hub, monkeypatch):
    monkeypatch.setattr(progress, "AUTH_RATE_LIMIT", 1)
    with TestClient(api_module.app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "auth", "token": "garbage"})
            assert ws.receive_json()["type"] == "auth_error"

            ws.send_json({"type": "auth", "token": _token("user-1")})
            reply = ws.receive_json()
            assert reply["type"] == "auth_error"
            assert reply["data"]["error"] == "Too many attempts"


def test_ingest_requires_key(auth_config, fresh_hub):
    with TestClient(api_module.app) as client:
        assert _ingest(client, _progress_body(), key="wrong").status_code == 401
        assert client.post("/internal/progress", json=_progress_body()).status_code == 401
        assert client.get("/internal/clients").status_code == 401


def test_ingest_disabled_without_key(monkeypatch, fresh_hub):
    monkeypatch.setattr(security, "PROGRESS_INGEST_KEY", None)
    with TestClient(api_module.app) as client:
        assert _ingest(client, _progress_body()).status_code == 503


def test_ingest_rejects_invalid_events(auth_config, fresh_hub):
    with TestClient(api_module.app) as client:
        resp = _ingest(client, {"userId": "user-1", "type": "system_stats", "data": {}})
        assert resp.status_code == 422

        resp = _ingest(client, {"userId": "user-1", "type": "scraping_progress", "data": {"jobId": "job-1"}})
        assert resp.status_code == 422


def test_ingest_without_user_broadcasts_to_everyone(auth_config, fresh_hub):
    with TestClient(api_module.app) as client:
        with client.websocket_connect("/ws") as ws:
            resp = _ingest(client, {"userId": None, "type": "job_failed", "data": {"jobId": "job-9", "error": "Job not found"}})
            assert resp.json() == {"delivered": 1}
            msg = ws.receive_json()
            assert msg["type"] == "job_failed"
            assert msg["data"] == {"jobId": "job-9", "error": "Job not found"}


def test_decode_socket_token(auth_config):
    assert security.decode_socket_token(_token("42")) == "42"
    assert security.decode_socket_token(jwt.encode({"sub": "7"}, "test-secret", algorithm="HS256")) == "7"
    assert security.decode_socket_token(jwt.encode({"role": "x"}, "test-secret", algorithm="HS256")) is None
    assert security.decode_socket_token("not-a-token") is None
    assert security.decode_socket_token(None) is None


def test_decode_socket_token_requires_secret(monkeypatch):
    monkeypatch.setattr(security, "JWT_SECRET", None)
    with pytest.raises(RuntimeError):
        security.decode_socket_token("anything")


def test_rate_limit_sliding_window():
    key = "test:rl"
    allowed, remaining = security.allow_request_with_remaining(key, limit=2, window_seconds=60)
    assert allowed is True and remaining == 1
    allowed, remaining = security.allow_request_with_remaining(key, limit=2, window_seconds=60)
    assert allowed is True and remaining == 0
    allowed, remaining = security.allow_request_with_remaining(key, limit=2, window_seconds=60)
    assert allowed is False and remaining == 0


def test_health_endpoint_and_security_headers():
    with TestClient(api_module.app) as client:
        resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "OK"
    assert body["uptime"] >= 0
    assert resp.headers.get("X-Content-Type-Options") == "nosniff"
    assert resp.headers.get("X-Frame-Options") == "SAMEORIGIN"
    assert "default-src 'self'" in (resp.headers.get("Content-Security-Policy") or "")


def test_security_headers_preserve_existing_csp():
    async def run_test():
        async def call_next(_request: Request) -> Response:
            resp = Response()
            resp.headers["Content-Security-Policy"] = "default-src 'self'; img-src 'self' data:"
            return resp

        scope = {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": [],
            "query_string": b"",
        }
        request = Request(scope)
        resp = await api_module.add_security_headers(request, call_next)

        assert resp.headers["Content-Security-Policy"] == "default-src 'self'; img-src 'self' data:"
        assert resp.headers.get("X-Content-Type-Options") == "nosniff"

    asyncio.run(run_test())
