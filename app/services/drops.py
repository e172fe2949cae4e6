"""
Drop creation (staking), lookup and the discover feed.
"""
import logging
import uuid
from datetime import datetime, timezone, timedelta

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.errors import (
    DependencyFailure,
    InsufficientReputation,
    InvalidCursor,
    NotFoundError,
    WeeklyLimitReached,
)
from app.models import Drop
from app.schemas.drop import DropCreate
from app.services.profiles import apply_reputation_event, get_profile
from app.settings import settings

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored value is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def get_weekly_drop_count(
    db: AsyncSession, user_id: uuid.UUID, now: datetime | None = None
) -> tuple[int, datetime | None]:
    """
    Count the user's drops in the rolling window.

    Returns:
        Tuple of (count, oldest created_at inside the window or None)
    """
    now = now or _now_utc()
    window_start = now - timedelta(days=settings.WEEKLY_WINDOW_DAYS)
    stmt = select(func.count(Drop.id), func.min(Drop.created_at)).where(
        Drop.user_id == user_id,
        Drop.created_at >= window_start,
    )
    count, oldest = (await db.execute(stmt)).one()
    return count, (_as_utc(oldest) if oldest is not None else None)


def next_window_reset(oldest_in_window: datetime | None, now: datetime) -> datetime:
    """When the oldest drop leaves the rolling window a slot frees up."""
    if oldest_in_window is None:
        return now
    return oldest_in_window + timedelta(days=settings.WEEKLY_WINDOW_DAYS)


async def create_drop(
    db: AsyncSession,
    user_id: uuid.UUID,
    data: DropCreate,
    now: datetime | None = None,
) -> tuple[Drop, int]:
    """
    Create an active drop and escrow its stake.

    The profile row stays locked from the cap check to the commit so two
    concurrent creations for one user cannot both pass the balance check.

    Returns:
        Tuple of (new Drop, drops in the current window including this one)

    Raises:
        NotFoundError: the caller has not onboarded
        WeeklyLimitReached: rolling cap hit
        InsufficientReputation: reputation_available < stake
        DependencyFailure: the write failed; nothing was persisted
    """
    now = now or _now_utc()
    profile = await get_profile(db, user_id, for_update=True)

    weekly_count, oldest = await get_weekly_drop_count(db, user_id, now)
    if weekly_count >= settings.WEEKLY_DROP_LIMIT:
        await db.rollback()
        resets_at = next_window_reset(oldest, now)
        raise WeeklyLimitReached(
            f"You can post {settings.WEEKLY_DROP_LIMIT} drops per week. "
            "This helps you curate your best picks.",
            drops_this_week=weekly_count,
            limit=settings.WEEKLY_DROP_LIMIT,
            resets_at=resets_at.isoformat(),
        )

    stake = data.reputation_stake
    if profile.reputation_available < stake:
        available = profile.reputation_available
        await db.rollback()
        raise InsufficientReputation(
            "Not enough reputation available to stake",
            available=available,
            required=stake,
        )

    drop = Drop(
        id=uuid.uuid4(),
        user_id=user_id,
        track_id=data.track_id,
        platform=data.platform,
        track_name=data.track_name,
        artist_name=data.artist_name,
        album_name=data.album_name,
        album_art_url=data.album_art_url,
        external_url=data.external_url,
        preview_url=data.preview_url,
        context=data.context,
        listening_notes=data.listening_notes,
        genres=data.genres,
        moods=data.moods,
        reputation_stake=stake,
        status="active",
        validation_count=0,
        total_rating_sum=0,
        validation_score=0.0,
        expires_at=now + timedelta(hours=settings.DROP_TTL_HOURS),
        created_at=now,
    )
    db.add(drop)
    # stake is escrowed: trust unchanged, available balance reduced
    apply_reputation_event(
        db,
        profile,
        "drop_created",
        points_change=0,
        available_change=-stake,
        related_drop_id=drop.id,
        metadata={"stake": stake},
    )
    profile.total_drops += 1

    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"Drop creation failed for {user_id}: {exc}", exc_info=True)
        raise DependencyFailure("Failed to create drop") from exc

    await db.refresh(drop)
    logger.info(f"Drop {drop.id} created by {user_id} staking {stake}")
    return drop, weekly_count + 1


async def get_drop(db: AsyncSession, drop_id: uuid.UUID) -> Drop:
    stmt = select(Drop).options(selectinload(Drop.owner)).where(Drop.id == drop_id)
    drop = (await db.execute(stmt)).scalar_one_or_none()
    if drop is None:
        raise NotFoundError("Drop not found", code="DROP_NOT_FOUND")
    return drop


def encode_feed_cursor(drop: Drop) -> str:
    return f"{_as_utc(drop.created_at).isoformat()}|{drop.id}"


def decode_feed_cursor(raw: str) -> tuple[datetime, uuid.UUID | None]:
    """
    Split a "<created_at>|<id>" cursor. A bare created_at is accepted and
    pages by timestamp alone.

    Raises:
        InvalidCursor: not a timestamp, or the id part is not a UUID
    """
    created_part, _, id_part = raw.partition("|")
    try:
        created_at = _as_utc(datetime.fromisoformat(created_part)).astimezone(timezone.utc)
        drop_id = uuid.UUID(id_part) if id_part else None
    except ValueError as exc:
        raise InvalidCursor("Malformed feed cursor", cursor=raw) from exc
    return created_at, drop_id


async def list_feed(
    db: AsyncSession,
    limit: int = 20,
    cursor: str | None = None,
    user_id: uuid.UUID | None = None,
    status: str | None = None,
) -> tuple[list[Drop], str | None, bool]:
    """
    Newest-first page of drops keyed on (created_at, id).

    The id breaks ties between drops created in the same instant so none are
    skipped at a page boundary. One extra row is fetched to learn whether
    another page exists.

    Returns:
        Tuple of (drops, next_cursor, has_more)
    """
    stmt = (
        select(Drop)
        .options(selectinload(Drop.owner))
        .order_by(Drop.created_at.desc(), Drop.id.desc())
        .limit(limit + 1)
    )
    if cursor is not None:
        created_at, drop_id = decode_feed_cursor(cursor)
        if drop_id is None:
            stmt = stmt.where(Drop.created_at < created_at)
        else:
            stmt = stmt.where(
                or_(
                    Drop.created_at < created_at,
                    and_(Drop.created_at == created_at, Drop.id < drop_id),
                )
            )
    if user_id is not None:
        stmt = stmt.where(Drop.user_id == user_id)
    if status is not None:
        stmt = stmt.where(Drop.status == status)

    drops = list((await db.execute(stmt)).scalars().all())
    has_more = len(drops) > limit
    if has_more:
        drops = drops[:limit]

    next_cursor = None
    if has_more and drops:
        next_cursor = encode_feed_cursor(drops[-1])
    return drops, next_cursor, has_more
