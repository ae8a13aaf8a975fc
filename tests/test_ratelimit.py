from __future__ import annotations

import asyncio

import pytest

from sharechat.errors import RateLimitExceeded
from sharechat.ratelimit import RateLimiter

# FakeClock starts at 1_700_000_000, which is 2800 s before the next hour boundary.
SECONDS_LEFT = 2800


def _admit_n(limiter: RateLimiter, identity: str, n: int) -> None:
    async def run():
        for _ in range(n):
            await limiter.admit(identity)

    asyncio.run(run())


def test_admits_up_to_limit_then_rejects(store, clock):
    limiter = RateLimiter(store, clock=clock)
    _admit_n(limiter, "1.2.3.4", 10)

    with pytest.raises(RateLimitExceeded) as exc:
        asyncio.run(limiter.admit("1.2.3.4"))
    assert exc.value.identity == "1.2.3.4"
    assert exc.value.retry_after == SECONDS_LEFT
    assert str(exc.value) == "Rate limit exceeded. Please try again later."


def test_rejection_does_not_increment(store, clock):
    limiter = RateLimiter(store, limit=2, clock=clock)
    _admit_n(limiter, "a", 2)
    for _ in range(3):
        with pytest.raises(RateLimitExceeded):
            asyncio.run(limiter.admit("a"))
    assert asyncio.run(store.get(limiter.key_for("a"))) == "2"


def test_new_window_resets(store, clock):
    limiter = RateLimiter(store, clock=clock)
    _admit_n(limiter, "a", 10)
    first_key = limiter.key_for("a")

    clock.advance(SECONDS_LEFT)
    assert limiter.key_for("a") != first_key
    _admit_n(limiter, "a", 10)
    with pytest.raises(RateLimitExceeded):
        asyncio.run(limiter.admit("a"))


def test_counter_expires_with_window(store, clock):
    limiter = RateLimiter(store, clock=clock)
    _admit_n(limiter, "a", 1)
    key = limiter.key_for("a")
    assert key == f"rate_limit:a:{int(clock.now // 3600)}"
    assert asyncio.run(store.get(key)) == "1"

    clock.advance(SECONDS_LEFT)
    assert asyncio.run(store.get(key)) is None


def test_identities_are_independent(store, clock):
    limiter = RateLimiter(store, limit=1, clock=clock)
    _admit_n(limiter, "a", 1)
    _admit_n(limiter, "b", 1)
    with pytest.raises(RateLimitExceeded):
        asyncio.run(limiter.admit("a"))


def test_malformed_counter_rejects_until_window_ends(store, clock):
    limiter = RateLimiter(store, clock=clock)
    key = limiter.key_for("a")
    asyncio.run(store.put(key, "garbage", expire_after_seconds=SECONDS_LEFT))
    with pytest.raises(RateLimitExceeded):
        asyncio.run(limiter.admit("a"))
    assert asyncio.run(store.get(key)) == "garbage"

    clock.advance(SECONDS_LEFT)
    _admit_n(limiter, "a", 1)


@pytest.mark.parametrize("kwargs", [{"limit": 0}, {"window_seconds": 0}])
def test_rejects_non_positive_settings(store, kwargs):
    with pytest.raises(ValueError):
        RateLimiter(store, **kwargs)
