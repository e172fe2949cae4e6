"""
Profile and reputation ledger services.

Every balance change goes through apply_reputation_event so the ledger row and
the profile balances are written in the same transaction.
"""
import logging
import math
import uuid
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ConflictError, DependencyFailure, NotFoundError
from app.models import Drop, Profile, ReputationEvent
from app.settings import settings

logger = logging.getLogger(__name__)

ReputationEventType = Literal[
    "drop_created", "drop_validated", "drop_failed", "manual_adjustment"
]

PUBLIC_PROFILE_DROPS = 20
PUBLIC_PROFILE_EVENTS = 10


async def get_profile(
    db: AsyncSession, user_id: uuid.UUID, *, for_update: bool = False
) -> Profile:
    """
    Load a profile, optionally taking a row lock for a balance read-modify-write.

    Raises:
        NotFoundError: no profile for user_id
    """
    stmt = select(Profile).where(Profile.id == user_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError(f"Profile {user_id} not found", code="PROFILE_NOT_FOUND")
    return profile


async def create_profile(
    db: AsyncSession,
    user_id: uuid.UUID,
    username: str,
    *,
    display_name: str | None = None,
    bio: str | None = None,
    curation_statement: str | None = None,
    genre_preferences: list[str] | None = None,
) -> Profile:
    """Onboard a user with the starting reputation balance."""
    existing = await db.execute(
        select(Profile.id, Profile.username).where(
            (Profile.id == user_id) | (func.lower(Profile.username) == username.lower())
        )
    )
    for row in existing.all():
        if row.id == user_id:
            raise ConflictError("Profile already exists", code="PROFILE_EXISTS")
        raise ConflictError("Username already taken", code="USERNAME_TAKEN")

    profile = Profile(
        id=user_id,
        username=username,
        display_name=display_name,
        bio=bio,
        curation_statement=curation_statement,
        genre_preferences=genre_preferences,
        trust_score=settings.INITIAL_TRUST_SCORE,
        reputation_available=settings.INITIAL_REPUTATION_AVAILABLE,
        total_drops=0,
    )
    db.add(profile)
    try:
        await db.commit()
    except IntegrityError:
        # lost a race on the unique username or primary key
        await db.rollback()
        raise ConflictError("Username already taken", code="USERNAME_TAKEN")
    await db.refresh(profile)
    logger.info(f"Onboarded profile {profile.id} ({profile.username})")
    return profile


def apply_reputation_event(
    db: AsyncSession,
    profile: Profile,
    event_type: ReputationEventType,
    *,
    points_change: int,
    available_change: int,
    related_drop_id: uuid.UUID | None = None,
    metadata: dict | None = None,
) -> ReputationEvent:
    """
    Append a ledger entry and move the profile balances to match it.

    The caller owns the transaction and must hold the profile row lock.

    Args:
        points_change: signed change to trust_score (clamped at 0)
        available_change: signed change to reputation_available

    Returns:
        The pending ReputationEvent
    """
    new_trust_score = max(0, profile.trust_score + points_change)
    new_reputation_available = profile.reputation_available + available_change

    event = ReputationEvent(
        id=uuid.uuid4(),
        user_id=profile.id,
        event_type=event_type,
        points_change=points_change,
        new_trust_score=new_trust_score,
        new_reputation_available=new_reputation_available,
        related_drop_id=related_drop_id,
        event_metadata=metadata or {},
    )
    db.add(event)

    profile.trust_score = new_trust_score
    profile.reputation_available = new_reputation_available
    return event


async def adjust_reputation(
    db: AsyncSession,
    user_id: uuid.UUID,
    points_change: int,
    reputation_delta: int,
    reason: str,
) -> Profile:
    """
    Apply a manual_adjustment ledger entry.

    The available balance is clamped at 0 the same way trust is.
    """
    profile = await get_profile(db, user_id, for_update=True)
    available_change = max(-profile.reputation_available, reputation_delta)
    apply_reputation_event(
        db,
        profile,
        "manual_adjustment",
        points_change=points_change,
        available_change=available_change,
        metadata={
            "reason": reason,
            "requested_reputation_delta": reputation_delta,
        },
    )
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"Reputation adjustment failed for {user_id}: {exc}", exc_info=True)
        raise DependencyFailure("Failed to adjust reputation") from exc
    await db.refresh(profile)
    logger.info(
        f"Manual reputation adjustment for {user_id}: "
        f"trust {points_change:+d}, available {available_change:+d} ({reason})"
    )
    return profile


async def get_reputation_history(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[ReputationEvent], int]:
    """
    Retrieve a page of ledger entries, newest first.

    Returns:
        Tuple of (list of ReputationEvent records, total count)
    """
    count_stmt = (
        select(func.count())
        .select_from(ReputationEvent)
        .where(ReputationEvent.user_id == user_id)
    )
    total = (await db.execute(count_stmt)).scalar_one()

    stmt = (
        select(ReputationEvent)
        .where(ReputationEvent.user_id == user_id)
        .order_by(ReputationEvent.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    items = list(result.scalars().all())

    return items, total


def success_rate(profile: Profile) -> int:
    """Whole-percent share of the profile's drops that resolved as validated."""
    if profile.total_drops == 0:
        return 0
    # half rounds up
    return math.floor(profile.successful_drops * 100 / profile.total_drops + 0.5)


async def get_public_profile(
    db: AsyncSession, username: str
) -> tuple[Profile, list[Drop], list[ReputationEvent]]:
    """
    Look up a profile by username with its newest drops and ledger entries.

    Raises:
        NotFoundError: no profile with that username
    """
    result = await db.execute(
        select(Profile).where(func.lower(Profile.username) == username.strip().lower())
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError(f"Profile {username} not found", code="PROFILE_NOT_FOUND")

    drops_stmt = (
        select(Drop)
        .where(Drop.user_id == profile.id)
        .order_by(Drop.created_at.desc(), Drop.id.desc())
        .limit(PUBLIC_PROFILE_DROPS)
    )
    drops = list((await db.execute(drops_stmt)).scalars().all())
    events, _ = await get_reputation_history(db, profile.id, limit=PUBLIC_PROFILE_EVENTS)
    return profile, drops, events
