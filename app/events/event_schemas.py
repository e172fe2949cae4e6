"""
Pydantic schemas for all event types emitted by the drops service.

Events are published to Redis pub/sub channel 'drops.events' with JSON payloads.
Feed, notification and analytics consumers subscribe to this channel.
"""
import uuid
from datetime import datetime, timezone
from typing import Literal
from pydantic import BaseModel, Field


class BaseEvent(BaseModel):
    """Base event schema with common fields."""

    event: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DropCreatedEvent(BaseEvent):
    """Emitted when a drop is created and its stake escrowed."""
    event: Literal["drop.created"] = "drop.created"
    drop_id: uuid.UUID
    user_id: uuid.UUID
    reputation_stake: int
    expires_at: datetime


class DropValidatedEvent(BaseEvent):
    """Emitted when a rating is accepted for an active drop."""
    event: Literal["drop.rated"] = "drop.rated"
    drop_id: uuid.UUID
    validator_id: uuid.UUID
    rating: int
    validation_count: int
    validation_score: float


class DropResolvedEvent(BaseEvent):
    """Emitted after a drop reaches validated or failed."""
    event: Literal["drop.resolved"] = "drop.resolved"
    drop_id: uuid.UUID
    user_id: uuid.UUID
    status: Literal["validated", "failed"]
    points_change: int
    points_returned: int
    new_trust_score: int
    new_reputation_available: int


class ReputationAdjustedEvent(BaseEvent):
    """Emitted for manual ledger adjustments."""
    event: Literal["reputation.adjusted"] = "reputation.adjusted"
    user_id: uuid.UUID
    points_change: int
    new_trust_score: int
    new_reputation_available: int
    reason: str


# Union type for all events (useful for type checking)
EventType = (
    DropCreatedEvent
    | DropValidatedEvent
    | DropResolvedEvent
    | ReputationAdjustedEvent
)
