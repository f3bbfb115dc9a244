import pytest

from taquilla.services.rate_limiter import SlidingWindowRateLimiter


NOW = 1_800_000_000_000
WINDOW_MS = 300_000


@pytest.mark.unit
class TestSlidingWindowRateLimiter:
    def test_allows_up_to_limit_then_rejects(self, fake_redis):
        limiter = SlidingWindowRateLimiter(fake_redis, limit=2, window_seconds=300)

        first = limiter.hit("user:1", now_ms=NOW)
        second = limiter.hit("user:1", now_ms=NOW + 1)
        third = limiter.hit("user:1", now_ms=NOW + 2)

        assert (first.allowed, first.remaining) == (True, 1)
        assert (second.allowed, second.remaining) == (True, 0)
        assert (third.allowed, third.remaining) == (False, 0)
        assert third.reset_at == NOW + WINDOW_MS

    def test_window_slides(self, fake_redis):
        r = fake_redis
        limiter = SlidingWindowRateLimiter(r, limit=2, window_seconds=300)
        limiter.hit("user:1", now_ms=NOW)
        limiter.hit("user:1", now_ms=NOW + 1)
        assert limiter.hit("user:1", now_ms=NOW + 2).allowed is False

        # both counted attempts have left the window; the rejected one was never counted
        later = limiter.hit("user:1", now_ms=NOW + WINDOW_MS + 1)
        assert (later.allowed, later.remaining) == (True, 1)

    def test_identities_are_independent(self, fake_redis):
        limiter = SlidingWindowRateLimiter(fake_redis, limit=1, window_seconds=300)
        assert limiter.hit("user:1", now_ms=NOW).allowed
        assert limiter.hit("user:2", now_ms=NOW).allowed
        assert not limiter.hit("user:1", now_ms=NOW + 10).allowed

    def test_key_expires_with_window(self, fake_redis):
        r = fake_redis
        limiter = SlidingWindowRateLimiter(r, limit=2, window_seconds=300, prefix="rl:test")
        limiter.hit("ip:10.0.0.1", now_ms=NOW)
        assert r.ttls == {"rl:test:ip:10.0.0.1": WINDOW_MS}

    def test_fails_open_when_redis_is_down(self, fake_redis):
        fake_redis.down = True
        limiter = SlidingWindowRateLimiter(fake_redis, limit=1, window_seconds=300)
        for i in range(3):
            assert limiter.hit("user:1", now_ms=NOW + i).allowed
