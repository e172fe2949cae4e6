"""
Event emitter using Redis pub/sub.

Publishes events to 'drops.events' channel for consumption by downstream
services.
"""
import logging

from redis.asyncio import Redis

from app.events.event_schemas import EventType
from app.redis_client import get_redis

logger = logging.getLogger(__name__)

EVENTS_CHANNEL = "drops.events"


async def emit_event(event: EventType, r: Redis | None = None) -> bool:
    """
    Emit an event to Redis pub/sub channel.

    Args:
        event: Event object (must be a subclass of BaseEvent)
        r: Redis client to publish with; defaults to the process client

    Returns:
        True if event was published successfully, False otherwise

    Note:
        Events are published after the database commit. If Redis is not
        available the failure is logged and the committed state stands.
    """
    try:
        redis = r or await get_redis()
        if redis is None:
            logger.warning(f"Redis not available, cannot emit event: {event.event}")
            return False

        payload = event.model_dump_json()
        subscribers = await redis.publish(EVENTS_CHANNEL, payload)

        logger.info(f"Emitted event: {event.event} to {subscribers} subscriber(s)")
        return True

    except Exception as e:
        logger.error(f"Failed to emit event: {event.event}: {e}", exc_info=True)
        return False
