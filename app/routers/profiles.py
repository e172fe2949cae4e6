"""
Profile onboarding and reputation ledger endpoints.
"""
import uuid

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import enforce_rate_limit
from app.database import get_db
from app.dependencies.service_auth import verify_service_token
from app.events.emitter import emit_event
from app.events.event_schemas import ReputationAdjustedEvent
from app.models import Profile
from app.redis_client import get_redis
from app.schemas.drop import DropRead
from app.schemas.profile import (
    ProfileCreate,
    ProfileRead,
    PublicProfileResponse,
    ReputationAdjustRequest,
    ReputationEventItem,
    ReputationHistoryResponse,
)
from app.security import get_current_profile, get_current_user_id
from app.services.profiles import (
    adjust_reputation,
    create_profile,
    get_public_profile,
    get_reputation_history,
    success_rate,
)
from app.settings import settings

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.post("", response_model=ProfileRead, status_code=201)
async def onboard(
    payload: ProfileCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Create the caller's profile with the starting reputation balance.

    409 if the caller already onboarded or the username is taken.
    """
    return await create_profile(
        db,
        user_id,
        payload.username,
        display_name=payload.display_name,
        bio=payload.bio,
        curation_statement=payload.curation_statement,
        genre_preferences=payload.genre_preferences,
    )


@router.get("/me", response_model=ProfileRead)
async def who_am_i(profile: Profile = Depends(get_current_profile)):
    return profile


@router.get("/me/reputation-events", response_model=ReputationHistoryResponse)
async def my_reputation_events(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
) -> ReputationHistoryResponse:
    items, total = await get_reputation_history(db, profile.id, limit=limit, offset=offset)
    return ReputationHistoryResponse(
        user_id=profile.id,
        items=[ReputationEventItem.model_validate(i) for i in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{username}", response_model=PublicProfileResponse)
async def read_public_profile(
    username: str,
    caller_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    r: Redis = Depends(get_redis),
) -> PublicProfileResponse:
    """
    Profile page for any curator: newest drops and the last ledger entries.
    """
    await enforce_rate_limit(
        "feed",
        str(caller_id),
        capacity=settings.RATE_LIMIT_FEED_CAPACITY,
        refill_tokens=settings.RATE_LIMIT_FEED_REFILL_TOKENS,
        refill_period_seconds=settings.RATE_LIMIT_FEED_REFILL_PERIOD_SECONDS,
        r=r,
    )
    profile, drops, events = await get_public_profile(db, username)
    return PublicProfileResponse(
        profile=ProfileRead.model_validate(profile),
        success_rate=success_rate(profile),
        drops=[DropRead.model_validate(d) for d in drops],
        reputation_events=[ReputationEventItem.model_validate(e) for e in events],
    )


@router.post("/{user_id}/reputation/adjust", response_model=ProfileRead)
async def adjust_user_reputation(
    user_id: uuid.UUID,
    payload: ReputationAdjustRequest,
    db: AsyncSession = Depends(get_db),
    r: Redis = Depends(get_redis),
    _service_auth: None = Depends(verify_service_token),
):
    """
    Apply a manual_adjustment ledger entry (service only).
    """
    await enforce_rate_limit(
        "reputation_adjust",
        str(user_id),
        capacity=settings.RATE_LIMIT_REPUTATION_ADJUST_CAPACITY,
        refill_tokens=settings.RATE_LIMIT_REPUTATION_ADJUST_REFILL_TOKENS,
        refill_period_seconds=settings.RATE_LIMIT_REPUTATION_ADJUST_REFILL_PERIOD_SECONDS,
        r=r,
    )
    profile = await adjust_reputation(
        db,
        user_id,
        points_change=payload.points_change,
        reputation_delta=payload.reputation_delta,
        reason=payload.reason,
    )
    await emit_event(
        ReputationAdjustedEvent(
            user_id=profile.id,
            points_change=payload.points_change,
            new_trust_score=profile.trust_score,
            new_reputation_available=profile.reputation_available,
            reason=payload.reason,
        ),
        r,
    )
    return profile
