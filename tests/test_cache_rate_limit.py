import time

import pytest

from app.cache import enforce_rate_limit, make_rate_limit_key, token_bucket_allow
from app.errors import RateLimitExceeded


class FakeRedis:
    """Minimal async Redis stub for rate-limit tests."""

    def __init__(self):
        self.store = {}
        self.ttl = {}

    async def hgetall(self, key):
        return self.store.get(key, {})

    async def hset(self, key, mapping):
        self.store.setdefault(key, {}).update(mapping)

    async def expire(self, key, seconds):
        # TTL behavior not needed for these tests; track for sanity.
        self.ttl[key] = seconds


def test_rate_limit_key_format():
    assert make_rate_limit_key("validate", "abc") == "rl:validate:abc"


@pytest.mark.asyncio
async def test_token_bucket_allows_until_empty():
    r = FakeRedis()
    key = "rl:test:user"

    # capacity 2, refill 2 per 60s. First two should pass, third should block.
    ok1, rem1 = await token_bucket_allow(key, capacity=2, refill_tokens=2, refill_period_seconds=60, r=r)
    ok2, rem2 = await token_bucket_allow(key, capacity=2, refill_tokens=2, refill_period_seconds=60, r=r)
    ok3, rem3 = await token_bucket_allow(key, capacity=2, refill_tokens=2, refill_period_seconds=60, r=r)

    assert ok1 and ok2
    assert not ok3
    assert rem1 == 1
    assert rem2 == 0
    assert rem3 == 0


@pytest.mark.asyncio
async def test_token_bucket_refills_over_time():
    r = FakeRedis()
    key = "rl:test:user"

    # Consume the only token.
    ok1, rem1 = await token_bucket_allow(key, capacity=1, refill_tokens=1, refill_period_seconds=1, r=r)
    assert ok1
    assert rem1 == 0

    # Simulate time passing by setting last_refill_ms in the past and tokens to 0.
    past_ms = int(time.time() * 1000) - 2000
    await r.hset(key, {"tokens": "0", "last_refill_ms": str(past_ms)})

    ok2, rem2 = await token_bucket_allow(key, capacity=1, refill_tokens=1, refill_period_seconds=1, r=r)
    assert ok2
    assert rem2 == 0


@pytest.mark.asyncio
async def test_enforce_rate_limit_raises_with_retry_hint():
    r = FakeRedis()

    await enforce_rate_limit("validate", "u1", capacity=1, refill_tokens=1, refill_period_seconds=30, r=r)
    with pytest.raises(RateLimitExceeded) as exc_info:
        await enforce_rate_limit("validate", "u1", capacity=1, refill_tokens=1, refill_period_seconds=30, r=r)

    assert exc_info.value.status_code == 429
    assert exc_info.value.data == {"limit": 1, "retry_after": 30}


@pytest.mark.asyncio
async def test_buckets_are_per_identifier():
    r = FakeRedis()

    await enforce_rate_limit("validate", "u1", capacity=1, refill_tokens=1, refill_period_seconds=30, r=r)
    remaining = await enforce_rate_limit(
        "validate", "u2", capacity=1, refill_tokens=1, refill_period_seconds=30, r=r
    )

    assert remaining == 0


@pytest.mark.asyncio
async def test_rate_limited_endpoint_returns_429(authenticated_client, monkeypatch):
    from app.settings import settings

    client, _ = authenticated_client
    monkeypatch.setattr(settings, "RATE_LIMIT_FEED_CAPACITY", 1)
    monkeypatch.setattr(settings, "RATE_LIMIT_FEED_REFILL_TOKENS", 1)

    first = await client.get("/feed")
    second = await client.get("/feed")

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.json()["error"] == "RATE_LIMITED"
