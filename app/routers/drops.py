"""
Drop endpoints: create (stake), detail, and validation intake.
"""
import uuid

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import enforce_rate_limit
from app.database import get_db
from app.events.emitter import emit_event
from app.events.event_schemas import DropCreatedEvent, DropValidatedEvent
from app.redis_client import get_redis
from app.schemas.drop import (
    DropCreate,
    DropCreateResponse,
    DropRead,
    FeedDrop,
    ValidationCreate,
    ValidationRead,
    ValidationResponse,
)
from app.models import Profile
from app.security import get_current_profile, get_current_user_id
from app.services.drops import create_drop, get_drop
from app.services.validations import submit_validation
from app.settings import settings

router = APIRouter(prefix="/drops", tags=["drops"])


@router.post("", response_model=DropCreateResponse, status_code=201)
async def create_drop_endpoint(
    payload: DropCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    r: Redis = Depends(get_redis),
) -> DropCreateResponse:
    """
    Create a drop and escrow its reputation stake.

    - 429 when the rolling weekly cap is reached (count, limit and reset time in the body)
    - 400 when reputation_available is below the stake (available and required in the body)
    """
    await enforce_rate_limit(
        "drop_create",
        str(user_id),
        capacity=settings.RATE_LIMIT_DROP_CREATE_CAPACITY,
        refill_tokens=settings.RATE_LIMIT_DROP_CREATE_REFILL_TOKENS,
        refill_period_seconds=settings.RATE_LIMIT_DROP_CREATE_REFILL_PERIOD_SECONDS,
        r=r,
    )
    drop, drops_this_week = await create_drop(db, user_id, payload)

    await emit_event(
        DropCreatedEvent(
            drop_id=drop.id,
            user_id=drop.user_id,
            reputation_stake=drop.reputation_stake,
            expires_at=drop.expires_at,
        ),
        r,
    )
    return DropCreateResponse(
        drop=DropRead.model_validate(drop),
        drops_this_week=drops_this_week,
        limit=settings.WEEKLY_DROP_LIMIT,
    )


@router.get("/{drop_id}", response_model=FeedDrop)
async def read_drop(
    drop_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> FeedDrop:
    drop = await get_drop(db, drop_id)
    return FeedDrop.model_validate(drop)


@router.post("/{drop_id}/validate", response_model=ValidationResponse, status_code=201)
async def validate_drop(
    drop_id: uuid.UUID,
    payload: ValidationCreate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    r: Redis = Depends(get_redis),
) -> ValidationResponse:
    """
    Rate someone else's active drop (1..5), once per drop.

    Errors: 404 unknown drop; 400 SELF_VALIDATION, DROP_NOT_ACTIVE or
    DUPLICATE_VALIDATION.
    """
    user_id = profile.id
    await enforce_rate_limit(
        "validate",
        str(user_id),
        capacity=settings.RATE_LIMIT_VALIDATE_CAPACITY,
        refill_tokens=settings.RATE_LIMIT_VALIDATE_REFILL_TOKENS,
        refill_period_seconds=settings.RATE_LIMIT_VALIDATE_REFILL_PERIOD_SECONDS,
        r=r,
    )
    validation = await submit_validation(
        db,
        drop_id,
        user_id,
        rating=payload.rating,
        listened=payload.listened,
        feedback=payload.feedback,
    )
    drop = await get_drop(db, drop_id)

    await emit_event(
        DropValidatedEvent(
            drop_id=drop_id,
            validator_id=user_id,
            rating=validation.rating,
            validation_count=drop.validation_count,
            validation_score=drop.validation_score,
        ),
        r,
    )
    return ValidationResponse(validation=ValidationRead.model_validate(validation))
