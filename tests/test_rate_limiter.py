"""
Tests for RateLimiter.
"""

from utils.rate_limiter import RateLimiter


def clock_from(values):
    times = iter(values)
    return lambda: next(times)


def test_rate_limiter_allows_within_limit():
    limiter = RateLimiter(clock=clock_from([0.0, 1.0]))

    result1 = limiter.check(scope="draftPick", player_id="2", limit=2, per_seconds=10)
    result2 = limiter.check(scope="draftPick", player_id="2", limit=2, per_seconds=10)

    assert result1.allowed is True
    assert result2.allowed is True


def test_rate_limiter_blocks_and_sets_retry():
    limiter = RateLimiter(clock=clock_from([0.0, 1.0, 2.0]))

    limiter.check(scope="placeBid", player_id="2", limit=2, per_seconds=10)
    limiter.check(scope="placeBid", player_id="2", limit=2, per_seconds=10)
    blocked = limiter.check(scope="placeBid", player_id="2", limit=2, per_seconds=10)

    assert blocked.allowed is False
    assert blocked.retry_after_seconds == 8


def test_rate_limiter_allows_after_window():
    limiter = RateLimiter(clock=clock_from([0.0, 1.0, 11.0]))

    limiter.check(scope="placeBid", player_id="2", limit=2, per_seconds=10)
    limiter.check(scope="placeBid", player_id="2", limit=2, per_seconds=10)
    allowed = limiter.check(scope="placeBid", player_id="2", limit=2, per_seconds=10)

    assert allowed.allowed is True


def test_rate_limiter_keys_by_player_and_scope():
    limiter = RateLimiter(clock=lambda: 0.0)

    assert limiter.check(scope="intent", player_id="1", limit=1, per_seconds=5).allowed
    assert limiter.check(scope="intent", player_id="2", limit=1, per_seconds=5).allowed
    assert limiter.check(scope="other", player_id="1", limit=1, per_seconds=5).allowed
    assert not limiter.check(scope="intent", player_id="1", limit=1, per_seconds=5).allowed


def test_forget_clears_player_windows():
    limiter = RateLimiter(clock=lambda: 0.0)
    limiter.check(scope="intent", player_id="1", limit=1, per_seconds=5)

    limiter.forget("1")

    assert limiter.check(scope="intent", player_id="1", limit=1, per_seconds=5).allowed
