"""
Scheduler trigger for drop resolution.
"""
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.redis_client import get_redis
from app.schemas.drop import ResolutionResponse
from app.security import verify_cron_secret
from app.services.resolution import resolve_expired_drops

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get("/resolve-drops", response_model=ResolutionResponse)
async def resolve_drops(
    db: AsyncSession = Depends(get_db),
    r: Redis = Depends(get_redis),
    _cron_auth: None = Depends(verify_cron_secret),
):
    """
    Resolve expired drops that have at least the minimum number of ratings.

    Authorized with `Authorization: Bearer <CRON_SECRET>`. Per-drop failures
    are listed in `errors` and do not fail the run.
    """
    try:
        summary = await resolve_expired_drops(db, r=r)
    except Exception as exc:
        logger.error(f"Cron job error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to resolve drops", "details": str(exc)},
        )

    message = "Drops resolved successfully" if summary.scanned else "No drops to resolve"
    return ResolutionResponse(
        message=message,
        resolved=summary.resolved,
        validated=summary.validated,
        failed=summary.failed,
        errors=summary.errors,
    )
