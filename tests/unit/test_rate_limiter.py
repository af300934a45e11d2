"""Tests for the fixed-window rate limiter"""

import pytest
import redis
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app import rate_limiter
from app.rate_limiter import FixedWindowLimiter, Window, create_rate_limiter


class BrokenRedis:
    def pipeline(self):
        raise redis.ConnectionError("down")


@pytest.mark.unit
class TestFixedWindow:
    def test_local_window_counts_and_resets(self):
        limiter = FixedWindowLimiter()

        first = limiter._hit_local("k", 60, now=1000.0)
        second = limiter._hit_local("k", 60, now=1010.0)
        assert (first, second) == ((1, 60), (2, 50))

        assert limiter._hit_local("k", 60, now=1061.0) == (1, 60)

    def test_window_allows_up_to_limit(self):
        assert Window(count=3, limit=3, resets_in=10).allowed
        blocked = Window(count=4, limit=3, resets_in=10)
        assert not blocked.allowed
        assert blocked.remaining == 0

    def test_falls_back_to_memory_when_redis_fails(self):
        limiter = FixedWindowLimiter()
        window = limiter.hit("k", 2, 60, client=BrokenRedis())
        assert window.count == 1
        assert window.allowed


@pytest.mark.unit
class TestDependency:
    @pytest.fixture
    def limited_client(self, monkeypatch):
        monkeypatch.setattr(rate_limiter, "RATE_LIMIT_ENABLED", True)
        monkeypatch.setattr(rate_limiter, "limiter", FixedWindowLimiter())

        def no_redis():
            raise redis.ConnectionError("down")

        monkeypatch.setattr(rate_limiter, "get_redis_client", no_redis)

        app = FastAPI()
        limit = create_rate_limiter(limit=2, window_seconds=60, key_prefix="public_booking")

        @app.post("/public/{slug}/book")
        def book(slug: str, _: None = Depends(limit)):
            return {"ok": True}

        return TestClient(app)

    def test_blocks_after_limit(self, limited_client):
        assert limited_client.post("/public/studio-bella/book").status_code == 200
        assert limited_client.post("/public/studio-bella/book").status_code == 200

        blocked = limited_client.post("/public/studio-bella/book")
        assert blocked.status_code == 429
        assert int(blocked.headers["Retry-After"]) <= 60

    def test_windows_are_per_salon(self, limited_client):
        for _ in range(2):
            limited_client.post("/public/studio-bella/book")
        assert limited_client.post("/public/outro-salao/book").status_code == 200
