import math
from datetime import datetime, timezone

from redis.asyncio import Redis

from app.errors import RateLimitExceeded
from app.redis_client import init_redis


def make_rate_limit_key(prefix: str, identifier: str) -> str:
    return f"rl:{prefix}:{identifier}"


async def token_bucket_allow(
    key: str,
    capacity: int,
    refill_tokens: int,
    refill_period_seconds: int,
    r: Redis | None = None,
) -> tuple[bool, int]:
    """
    Take one token from a Redis-backed bucket shared by every instance.

    Returns:
        Tuple of (allowed, tokens remaining)
    """
    r = r or await init_redis()
    now_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    bucket = await r.hgetall(key)
    tokens_raw = bucket.get("tokens") if bucket else None
    last_refill_raw = bucket.get("last_refill_ms") if bucket else None

    tokens = float(tokens_raw) if tokens_raw is not None else float(capacity)
    last_refill = int(last_refill_raw) if last_refill_raw is not None else now_ms

    elapsed_ms = max(0, now_ms - last_refill)
    tokens += (elapsed_ms / (refill_period_seconds * 1000)) * refill_tokens
    if tokens > capacity:
        tokens = capacity

    if tokens < 1:
        return False, int(tokens)

    tokens -= 1
    await r.hset(key, mapping={"tokens": str(tokens), "last_refill_ms": str(now_ms)})
    cycles = math.ceil(capacity / max(refill_tokens, 1))
    bucket_ttl = max(refill_period_seconds * max(cycles, 1), 1)
    await r.expire(key, bucket_ttl)
    return True, int(tokens)


async def enforce_rate_limit(
    prefix: str,
    identifier: str,
    capacity: int,
    refill_tokens: int,
    refill_period_seconds: int,
    r: Redis | None = None,
) -> int:
    """
    Consume a token or raise RateLimitExceeded with a retry hint.

    Returns:
        Tokens remaining after this call
    """
    allowed, remaining = await token_bucket_allow(
        make_rate_limit_key(prefix, identifier),
        capacity=capacity,
        refill_tokens=refill_tokens,
        refill_period_seconds=refill_period_seconds,
        r=r,
    )
    if not allowed:
        retry_after = math.ceil(refill_period_seconds / max(refill_tokens, 1))
        raise RateLimitExceeded(
            "Too many requests. Try again later.",
            limit=capacity,
            retry_after=retry_after,
        )
    return remaining
