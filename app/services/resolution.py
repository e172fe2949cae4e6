"""
Drop resolution: the active -> validated|failed transition and the batch
that applies it to every eligible drop.

Payout bands on the average rating (1..5 scale):
    >= 3.5        validated, stake returned plus floor(stake * 0.5) bonus
    >= 2.0        validated, stake returned
    below 2.0     failed, stake lost
"""
import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from redis.asyncio import Redis
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.events.emitter import emit_event
from app.events.event_schemas import DropResolvedEvent
from app.models import Drop, Validation
from app.services.profiles import apply_reputation_event, get_profile
from app.services.validations import running_score
from app.settings import settings

logger = logging.getLogger(__name__)

BONUS_THRESHOLD = 3.5
RETURN_THRESHOLD = 2.0
BONUS_RATE = 0.5


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Outcome:
    status: Literal["validated", "failed"]
    points_change: int
    points_returned: int
    avg_rating: float


@dataclass(frozen=True)
class ResolvedDrop:
    drop_id: uuid.UUID
    user_id: uuid.UUID
    outcome: Outcome
    new_trust_score: int
    new_reputation_available: int
    event_id: uuid.UUID


@dataclass
class ResolutionSummary:
    scanned: int = 0
    resolved: int = 0
    validated: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def compute_outcome(reputation_stake: int, validation_score: float) -> Outcome:
    """
    Map a stake and a normalized score (0..1) to the resolution outcome.

    Band lower bounds are inclusive. The score is de-normalized to the 1..5
    scale and rounded to 9 places so exact means such as 14/20 land on 3.5
    instead of a float neighbour.
    """
    avg_rating = round(validation_score * 5, 9)

    if avg_rating >= BONUS_THRESHOLD:
        bonus = math.floor(reputation_stake * BONUS_RATE)
        return Outcome("validated", bonus, reputation_stake + bonus, avg_rating)
    if avg_rating >= RETURN_THRESHOLD:
        return Outcome("validated", 0, reputation_stake, avg_rating)
    return Outcome("failed", -reputation_stake, 0, avg_rating)


def _eligible(now: datetime):
    return (
        Drop.status == "active",
        Drop.expires_at < now,
        Drop.validation_count >= settings.MIN_VALIDATIONS_TO_RESOLVE,
    )


async def find_resolvable_drop_ids(
    db: AsyncSession, now: datetime | None = None
) -> list[uuid.UUID]:
    now = now or _now_utc()
    result = await db.execute(select(Drop.id).where(*_eligible(now)))
    return list(result.scalars().all())


async def _recomputed_aggregate(db: AsyncSession, drop_id: uuid.UUID) -> tuple[int, float]:
    stmt = select(
        func.count(Validation.id), func.coalesce(func.sum(Validation.rating), 0)
    ).where(Validation.drop_id == drop_id)
    count, rating_sum = (await db.execute(stmt)).one()
    return count, running_score(int(rating_sum), count)


async def resolve_drop(
    db: AsyncSession,
    drop_id: uuid.UUID,
    now: datetime | None = None,
) -> ResolvedDrop | None:
    """
    Resolve one drop and settle its stake in a single transaction.

    The drop row is locked and eligibility re-checked under the lock, so a
    drop that another run already resolved (or that stopped being eligible)
    is skipped and nothing is written. Any failure, the locking select
    included, rolls the whole unit back so the session is clean for the next
    drop and this one stays active for the next run.

    Returns:
        ResolvedDrop, or None when the drop was not eligible under the lock

    Raises:
        NotFoundError: the owner's profile is missing
        SQLAlchemyError: the commit failed
    """
    now = now or _now_utc()
    stmt = (
        select(Drop)
        .where(Drop.id == drop_id, *_eligible(now))
        .with_for_update()
        .execution_options(populate_existing=True)
    )

    try:
        drop = (await db.execute(stmt)).scalar_one_or_none()
        if drop is None:
            await db.rollback()
            return None

        owner_id = drop.user_id
        stake = drop.reputation_stake
        validation_count = drop.validation_count
        validation_score = drop.validation_score

        if settings.RESOLUTION_RECOMPUTE_FROM_VALIDATIONS:
            validation_count, validation_score = await _recomputed_aggregate(db, drop_id)
            if validation_count < settings.MIN_VALIDATIONS_TO_RESOLVE:
                await db.rollback()
                return None

        outcome = compute_outcome(stake, validation_score)

        drop.status = outcome.status
        drop.resolved_at = now

        profile = await get_profile(db, owner_id, for_update=True)
        if outcome.status == "validated":
            profile.successful_drops += 1
        event = apply_reputation_event(
            db,
            profile,
            "drop_validated" if outcome.status == "validated" else "drop_failed",
            points_change=outcome.points_change,
            available_change=outcome.points_returned,
            related_drop_id=drop_id,
            metadata={
                "stake": stake,
                "validation_score": validation_score,
                "validator_count": validation_count,
                "points_returned": outcome.points_returned,
                "avg_rating": outcome.avg_rating,
            },
        )
        resolved = ResolvedDrop(
            drop_id=drop_id,
            user_id=owner_id,
            outcome=outcome,
            new_trust_score=event.new_trust_score,
            new_reputation_available=event.new_reputation_available,
            event_id=event.id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Resolved drop {drop_id} as {outcome.status}: avg_rating={outcome.avg_rating:.2f}, "
        f"points_change={outcome.points_change}, points_returned={outcome.points_returned}"
    )
    return resolved


async def resolve_expired_drops(
    db: AsyncSession,
    now: datetime | None = None,
    r: Redis | None = None,
) -> ResolutionSummary:
    """
    Resolve every eligible drop, isolating per-drop failures.

    Safe to run repeatedly or concurrently: each drop is resolved at most
    once because resolve_drop re-checks eligibility under the row lock.
    """
    now = now or _now_utc()
    drop_ids = await find_resolvable_drop_ids(db, now)
    summary = ResolutionSummary(scanned=len(drop_ids))

    if not drop_ids:
        logger.info("No drops to resolve")
        return summary

    for drop_id in drop_ids:
        try:
            resolved = await resolve_drop(db, drop_id, now)
        except Exception as exc:
            logger.error(f"Error resolving drop {drop_id}: {exc}", exc_info=True)
            summary.errors.append(f"Drop {drop_id}: {exc}")
            continue

        if resolved is None:
            summary.skipped += 1
            continue

        summary.resolved += 1
        if resolved.outcome.status == "validated":
            summary.validated += 1
        else:
            summary.failed += 1

        await emit_event(
            DropResolvedEvent(
                drop_id=resolved.drop_id,
                user_id=resolved.user_id,
                status=resolved.outcome.status,
                points_change=resolved.outcome.points_change,
                points_returned=resolved.outcome.points_returned,
                new_trust_score=resolved.new_trust_score,
                new_reputation_available=resolved.new_reputation_available,
            ),
            r,
        )

    logger.info(
        f"Resolution run: scanned={summary.scanned} resolved={summary.resolved} "
        f"validated={summary.validated} failed={summary.failed} "
        f"skipped={summary.skipped} errors={len(summary.errors)}"
    )
    return summary
