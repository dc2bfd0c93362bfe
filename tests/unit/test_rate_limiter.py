"""Tests for the provider rate limiter."""

from reel_assembler.utils.rate_limiter import RateLimiter, get_provider_limiter


def test_allows_calls_within_limit():
    limiter = RateLimiter(max_calls=3, time_window=60.0)

    for _ in range(3):
        assert limiter.wait_if_needed("search") == 0.0
    assert not limiter.can_proceed("search")


def test_endpoints_are_independent():
    limiter = RateLimiter(max_calls=1, time_window=60.0)
    limiter.wait_if_needed("videos")

    assert limiter.can_proceed("photos")


def test_waits_when_window_full():
    limiter = RateLimiter(max_calls=1, time_window=0.05)
    limiter.wait_if_needed()

    waited = limiter.wait_if_needed()

    assert waited > 0.0


def test_reset():
    limiter = RateLimiter(max_calls=1, time_window=60.0)
    limiter.wait_if_needed("a")
    limiter.reset("a")

    assert limiter.can_proceed("a")


def test_provider_limiter_is_shared():
    assert get_provider_limiter("test-provider") is get_provider_limiter("test-provider")
