"""
Validation intake: one rating per user per active drop.
"""
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import (
    DependencyFailure,
    DropNotActive,
    DuplicateValidation,
    NotFoundError,
    SelfValidation,
)
from app.models import Drop, Validation

logger = logging.getLogger(__name__)


def running_score(total_rating_sum: int, validation_count: int) -> float:
    """Mean of rating/5 over all accepted ratings."""
    if validation_count == 0:
        return 0.0
    return total_rating_sum / (5 * validation_count)


async def has_validated(
    db: AsyncSession, drop_id: uuid.UUID, validator_id: uuid.UUID
) -> bool:
    result = await db.execute(
        select(Validation.id).where(
            Validation.drop_id == drop_id,
            Validation.validator_id == validator_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def submit_validation(
    db: AsyncSession,
    drop_id: uuid.UUID,
    validator_id: uuid.UUID,
    rating: int,
    listened: bool = False,
    feedback: str | None = None,
) -> Validation:
    """
    Record a rating and fold it into the drop's aggregate.

    The drop row is locked while the rating is added so the resolver never
    reads a half-updated count/score pair.

    Raises:
        NotFoundError: drop missing
        SelfValidation: validator owns the drop
        DropNotActive: drop already resolved
        DuplicateValidation: validator already rated this drop
        DependencyFailure: the write failed
    """
    stmt = (
        select(Drop)
        .where(Drop.id == drop_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    drop = (await db.execute(stmt)).scalar_one_or_none()

    if drop is None:
        await db.rollback()
        raise NotFoundError("Drop not found", code="DROP_NOT_FOUND")
    if drop.user_id == validator_id:
        await db.rollback()
        raise SelfValidation("Cannot validate your own drop")
    if drop.status != "active":
        # rollback expires the instance
        drop_status = drop.status
        await db.rollback()
        raise DropNotActive("Drop is not active", status=drop_status)

    if await has_validated(db, drop_id, validator_id):
        await db.rollback()
        raise DuplicateValidation("You have already validated this drop")

    validation = Validation(
        id=uuid.uuid4(),
        drop_id=drop_id,
        validator_id=validator_id,
        rating=rating,
        listened=listened,
        feedback=feedback,
    )
    db.add(validation)

    drop.validation_count += 1
    drop.total_rating_sum += rating
    drop.validation_score = running_score(drop.total_rating_sum, drop.validation_count)

    try:
        await db.commit()
    except IntegrityError as exc:
        # the unique (drop_id, validator_id) constraint decided a concurrent race
        await db.rollback()
        raise DuplicateValidation("You have already validated this drop") from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"Validation creation failed for drop {drop_id}: {exc}", exc_info=True)
        raise DependencyFailure("Failed to create validation") from exc

    await db.refresh(validation)
    logger.info(
        f"Drop {drop_id} rated {rating} by {validator_id} "
        f"(count={drop.validation_count}, score={drop.validation_score:.3f})"
    )
    return validation
