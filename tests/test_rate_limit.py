from fastapi.testclient import TestClient

from tableside.core.config import settings
from tableside.core.rate_limit import InMemoryRateLimiter
from tableside.main import app


def test_limiter_blocks_after_max_requests():
    limiter = InMemoryRateLimiter()

    results = [limiter.is_allowed("ip:1", max_requests=3, window_seconds=60) for _ in range(4)]

    assert [allowed for allowed, _ in results] == [True, True, True, False]
    assert 1 <= results[-1][1] <= 61
    assert limiter.is_allowed("ip:2", max_requests=3, window_seconds=60) == (True, 0)


def test_reset_single_key():
    limiter = InMemoryRateLimiter()
    limiter.is_allowed("ip:1", max_requests=1, window_seconds=60)

    limiter.reset("ip:1")

    assert limiter.is_allowed("ip:1", max_requests=1, window_seconds=60)[0]


def test_login_is_rate_limited(monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_enabled", True)
    monkeypatch.setattr(settings, "rate_limit_login_requests", 2)
    client = TestClient(app)

    statuses = [
        client.post("/auth/login", json={"phone_number": "5550100", "name": "Alex"}).status_code
        for _ in range(3)
    ]

    assert statuses == [200, 200, 429]
