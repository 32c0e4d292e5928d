import redis
from fastapi.testclient import TestClient

from lessonquiz.main import create_app


def test_health_ok():
    app = create_app()
    client = TestClient(app)

    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("status") == "ok"


def test_health_live():
    app = create_app()
    client = TestClient(app)

    r = client.get("/health/live")
    assert r.status_code == 200
    assert r.json().get("status") == "live"


def test_health_ready(client):
    r = client.get("/health/ready")
    assert r.status_code == 200
    assert r.json().get("status") == "ready"


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "rid-123"})
    assert r.headers["X-Request-ID"] == "rid-123"
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_unauthenticated_requests_get_error_envelope(client):
    r = client.get("/quizzes/00000000-0000-0000-0000-000000000000")
    assert r.status_code == 401
    body = r.json()
    assert body["ok"] is False
    assert body["error_code"] == "unauthorized"
    assert body["request_id"]


class _DownRedis:
    def ping(self):
        raise redis.ConnectionError("connection refused")


def test_health_ready_reports_redis_outage(client, monkeypatch):
    import lessonquiz.routers.health as health_router

    monkeypatch.setattr(health_router, "get_redis", lambda: _DownRedis())
    r = client.get("/health/ready")
    assert r.status_code == 503
    assert r.json()["error_code"] == "http_error"
    assert r.json()["retryable"] is True
