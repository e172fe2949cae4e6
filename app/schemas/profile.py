"""
Pydantic schemas for profiles and the reputation ledger.
"""
import re
import uuid
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.drop import DropRead

USERNAME_PATTERN = re.compile(r"^[a-z0-9_]+$")
RESERVED_USERNAMES = {"admin", "api", "support", "help", "root", "system", "deepcuts"}


class ProfileCreate(BaseModel):
    """Onboarding request for the authenticated user."""

    username: str
    display_name: str | None = Field(None, max_length=100)
    bio: str | None = Field(None, max_length=500)
    curation_statement: str | None = Field(None, max_length=500)
    genre_preferences: list[str] | None = Field(None, max_length=10)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        cleaned = v.strip().lower()
        if len(cleaned) < 3:
            raise ValueError("Username must be at least 3 characters")
        if len(cleaned) > 50:
            raise ValueError("Username too long (max 50 characters)")
        if not USERNAME_PATTERN.match(cleaned):
            raise ValueError(
                "Username can only contain lowercase letters, numbers, and underscores"
            )
        if cleaned in RESERVED_USERNAMES:
            raise ValueError("This username is reserved")
        return cleaned


class ProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    username: str
    display_name: str | None = None
    bio: str | None = None
    curation_statement: str | None = None
    genre_preferences: list[str] | None = None
    trust_score: int
    reputation_available: int
    total_drops: int
    successful_drops: int
    created_at: datetime


class ReputationAdjustRequest(BaseModel):
    """Request to apply a manual ledger adjustment."""

    points_change: int = Field(..., description="Change in trust score (can be negative)")
    reputation_delta: int = Field(
        0, description="Change in available reputation (can be negative)"
    )
    reason: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Human-readable reason for adjustment",
    )


class ReputationEventItem(BaseModel):
    """Single ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_type: str
    points_change: int
    new_trust_score: int
    new_reputation_available: int
    related_drop_id: uuid.UUID | None = None
    metadata: dict | None = Field(None, validation_alias="event_metadata")
    created_at: datetime


class ReputationHistoryResponse(BaseModel):
    """Paginated ledger response."""

    user_id: uuid.UUID
    items: list[ReputationEventItem]
    total: int
    limit: int
    offset: int


class PublicProfileResponse(BaseModel):
    """A profile page: the profile, its newest drops and latest ledger entries."""

    profile: ProfileRead
    success_rate: int = Field(..., ge=0, le=100, description="Percent of drops validated")
    drops: list[DropRead]
    reputation_events: list[ReputationEventItem]
