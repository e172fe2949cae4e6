"""
Discover feed with (created_at, id) keyset pagination.
"""
import uuid

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import enforce_rate_limit
from app.database import get_db
from app.redis_client import get_redis
from app.schemas.drop import FeedDrop, FeedResponse
from app.security import get_current_user_id
from app.services.drops import list_feed
from app.settings import settings

router = APIRouter(prefix="/feed", tags=["feed"])


@router.get("", response_model=FeedResponse)
async def read_feed(
    limit: int = Query(20, ge=1, le=50),
    cursor: str | None = Query(
        None, max_length=100, description="next_cursor from the previous page"
    ),
    user_id: uuid.UUID | None = None,
    status: str | None = Query(None, pattern="^(active|validated|failed)$"),
    caller_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    r: Redis = Depends(get_redis),
) -> FeedResponse:
    """
    Newest drops first. Pass next_cursor back as cursor to get the next page.
    """
    await enforce_rate_limit(
        "feed",
        str(caller_id),
        capacity=settings.RATE_LIMIT_FEED_CAPACITY,
        refill_tokens=settings.RATE_LIMIT_FEED_REFILL_TOKENS,
        refill_period_seconds=settings.RATE_LIMIT_FEED_REFILL_PERIOD_SECONDS,
        r=r,
    )
    drops, next_cursor, has_more = await list_feed(
        db, limit=limit, cursor=cursor, user_id=user_id, status=status
    )
    return FeedResponse(
        drops=[FeedDrop.model_validate(d) for d in drops],
        next_cursor=next_cursor,
        has_more=has_more,
    )
