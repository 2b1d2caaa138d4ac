from fastapi.testclient import TestClient

from tableside.main import app


def test_health_ok():
    client = TestClient(app)
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert "memory_keys" in body["local_store"]
    assert body["ws_connections"] == 0


def test_health_db():
    client = TestClient(app)
    res = client.get("/health/db")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "database": "1"}


def test_metrics_count_requests_per_path():
    client = TestClient(app)
    client.get("/menu/lobster")
    client.get("/health")

    res = client.get("/metrics")

    assert res.status_code == 200
    body = res.json()
    assert body["requests_total"] >= 2
    assert body["by_path"]["/menu/lobster"]["errors"] == 0
    assert body["by_path"]["/health"]["count"] >= 1


def test_security_headers_and_request_id():
    client = TestClient(app)

    res = client.get("/health", headers={"X-Request-Id": "abc123"})

    assert res.headers["X-Request-Id"] == "abc123"
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert res.headers["X-Frame-Options"] == "DENY"
