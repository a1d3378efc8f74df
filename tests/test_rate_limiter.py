"""
Rate Limiter Tests
==================
RateLimiterMiddleware with mocked Redis.

a) 429 with the error envelope after the limit is exceeded
b) FAIL OPEN: requests pass with a degraded header when Redis is unavailable
c) Health probes are never rate-limited
d) Admin routes use the admin bucket
e) Window counting against a fake Redis
"""
from unittest.mock import AsyncMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from spacenexus.middleware.rate_limiter import RateBucket, RateDecision, RateLimiterMiddleware

CONSUME = "spacenexus.middleware.rate_limiter.RateLimiterMiddleware.consume"
GET_REDIS = "spacenexus.middleware.rate_limiter.get_redis_or_none"


def _build_app(rate_limiter_kwargs=None):
    app = FastAPI()

    @app.get("/api/test")
    async def test_route():
        return {"ok": True}

    @app.get("/api/admin/status")
    async def admin_route():
        return {"admin": True}

    @app.get("/healthz")
    async def healthz():
        return {"healthy": True}

    @app.get("/readyz")
    async def readyz():
        return {"ready": True}

    app.add_middleware(RateLimiterMiddleware, **(rate_limiter_kwargs or {}))
    return app


class FakeRedis:
    """In-memory stand-in for the INCR + EXPIRE script."""

    def __init__(self):
        self.counters = {}
        self.loaded = 0

    async def script_load(self, script: str) -> str:
        self.loaded += 1
        return f"sha_{self.loaded}"

    async def evalsha(self, sha: str, numkeys: int, *args):
        key = args[0]
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]


# ─── Test a: 429 after limit exceeded ───────────────────────────────────────

def test_rate_limit_429_after_exceeded():
    hits = 0

    async def side_effect(ip, bucket):
        nonlocal hits
        hits += 1
        return RateDecision(RateBucket("default", 5, 60), hits)

    with patch(CONSUME, side_effect=side_effect):
        client = TestClient(_build_app())

        for i in range(5):
            resp = client.get("/api/test")
            assert resp.status_code == 200, f"Request {i+1} should pass but got {resp.status_code}"
            assert resp.headers["X-RateLimit-Remaining"] == str(4 - i)

        resp = client.get("/api/test")
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "60"
        assert resp.headers["X-RateLimit-Remaining"] == "0"
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "RATE_LIMITED"


# ─── Test b: FAIL OPEN when Redis unavailable ──────────────────────────────

def test_fail_open_when_consume_reports_no_redis():
    with patch(CONSUME, new_callable=AsyncMock, return_value=None):
        resp = TestClient(_build_app()).get("/api/test")
    assert resp.status_code == 200
    assert resp.headers["X-Rate-Limit-Status"] == "degraded"


def test_fail_open_without_redis_url():
    with patch(GET_REDIS, new_callable=AsyncMock, return_value=None):
        resp = TestClient(_build_app()).get("/api/test")
    assert resp.status_code == 200
    assert resp.headers["X-Rate-Limit-Status"] == "degraded"


def test_fail_open_when_script_keeps_failing():
    fake = FakeRedis()
    fake.evalsha = AsyncMock(side_effect=ConnectionError("reset by peer"))
    with patch(GET_REDIS, new_callable=AsyncMock, return_value=fake):
        resp = TestClient(_build_app()).get("/api/test")
    assert resp.status_code == 200
    assert resp.headers["X-Rate-Limit-Status"] == "degraded"
    # Script reloaded once before giving up
    assert fake.loaded == 2


# ─── Test c: health probes bypass ───────────────────────────────────────────

def test_health_probes_never_limited():
    with patch(CONSUME, new_callable=AsyncMock) as mock_consume:
        client = TestClient(_build_app())
        for path in ("/healthz", "/readyz"):
            assert client.get(path).status_code == 200
        mock_consume.assert_not_called()


# ─── Test d: admin bucket ───────────────────────────────────────────────────

def test_admin_routes_use_admin_bucket():
    seen = []

    async def side_effect(ip, bucket):
        seen.append(bucket.name)
        return RateDecision(bucket, 1)

    with patch(CONSUME, side_effect=side_effect):
        client = TestClient(_build_app())
        client.get("/api/test")
        client.get("/api/admin/status")

    assert seen == ["default", "admin"]


def test_decision_headers():
    decision = RateDecision(RateBucket("admin", 30, 60), 31)
    assert decision.allowed is False
    assert decision.headers() == {
        "X-RateLimit-Limit": "30",
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Window": "60",
    }


# ─── Test e: counting against fake Redis ────────────────────────────────────

def test_window_counting_with_fake_redis():
    fake = FakeRedis()
    with patch(GET_REDIS, new_callable=AsyncMock, return_value=fake):
        client = TestClient(_build_app({"default_limit": 3, "default_window": 60, "admin_limit": 1}))

        assert [client.get("/api/test").status_code for _ in range(4)] == [200, 200, 200, 429]
        # Separate counter for admin routes
        assert client.get("/api/admin/status").status_code == 200
        assert client.get("/api/admin/status").status_code == 429

    assert fake.loaded == 1


def test_forwarded_for_selects_counter():
    fake = FakeRedis()
    with patch(GET_REDIS, new_callable=AsyncMock, return_value=fake):
        client = TestClient(_build_app({"default_limit": 1}))
        assert client.get("/api/test", headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1"}).status_code == 200
        assert client.get("/api/test", headers={"X-Forwarded-For": "198.51.100.7"}).status_code == 200

    assert set(fake.counters) == {"rl:203.0.113.5:default", "rl:198.51.100.7:default"}
