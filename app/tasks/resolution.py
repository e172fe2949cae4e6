"""
Periodic drop resolution, the beat-driven twin of GET /cron/resolve-drops.
"""
import asyncio
import logging
from dataclasses import asdict

from app.celery_app import app
from app.database import create_worker_session
from app.redis_client import create_worker_redis
from app.services.resolution import resolve_expired_drops

logger = logging.getLogger(__name__)


@app.task(name="app.tasks.resolution.resolve_expired_drops_task")
def resolve_expired_drops_task():
    """
    Resolve every expired drop with enough ratings.

    Returns the run summary as a dict so it is visible in the result backend.
    """

    async def _resolve():
        WorkerSession, engine = create_worker_session()
        redis = create_worker_redis()

        try:
            async with WorkerSession() as session:
                summary = await resolve_expired_drops(session, r=redis)
                return asdict(summary)
        finally:
            await redis.aclose()
            await engine.dispose()

    return asyncio.run(_resolve())
