"""
Pydantic schemas for drops, validations, the feed and resolution runs.
"""
import re
import uuid
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_URL_PATTERN = r"^https?://\S+$"

MAX_TAGS = 10
MAX_TAG_LENGTH = 100


def sanitize_text(value):
    """Trim and strip control characters except newlines and tabs."""
    if isinstance(value, str):
        return _CONTROL_CHARS.sub("", value.strip())
    return value


def sanitize_tags(value):
    if value is None:
        return None
    if not isinstance(value, list):
        return []
    cleaned = [item.strip() for item in value if isinstance(item, str)]
    return [item for item in cleaned if 0 < len(item) <= MAX_TAG_LENGTH][:MAX_TAGS]


class DropCreate(BaseModel):
    """Request to create a drop and stake reputation on it."""

    track_id: str = Field(..., min_length=1, max_length=255)
    platform: Literal["spotify", "apple_music", "youtube", "soundcloud"] = "spotify"
    track_name: str = Field(..., min_length=1, max_length=500)
    artist_name: str = Field(..., min_length=1, max_length=500)
    album_name: str | None = Field(None, max_length=500)
    album_art_url: str | None = Field(None, max_length=1024, pattern=_URL_PATTERN)
    external_url: str | None = Field(None, max_length=1024, pattern=_URL_PATTERN)
    preview_url: str | None = Field(None, max_length=1024, pattern=_URL_PATTERN)
    context: str = Field(
        ...,
        min_length=50,
        max_length=2000,
        description="Why this track matters (at least 50 characters)",
    )
    listening_notes: str | None = Field(None, max_length=1000)
    genres: list[str] | None = None
    moods: list[str] | None = None
    reputation_stake: int = Field(
        ..., ge=10, le=100, description="Points escrowed until resolution"
    )

    @field_validator("context", "listening_notes", mode="before")
    @classmethod
    def clean_text(cls, v):
        return sanitize_text(v)

    @field_validator("genres", "moods", mode="before")
    @classmethod
    def clean_tags(cls, v):
        return sanitize_tags(v)


class DropOwner(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    username: str
    display_name: str | None = None


class DropRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    track_id: str
    platform: str
    track_name: str
    artist_name: str
    album_name: str | None = None
    album_art_url: str | None = None
    external_url: str | None = None
    preview_url: str | None = None
    context: str
    listening_notes: str | None = None
    genres: list[str] | None = None
    moods: list[str] | None = None
    reputation_stake: int
    status: Literal["active", "validated", "failed"]
    validation_count: int
    validation_score: float
    expires_at: datetime
    resolved_at: datetime | None = None
    created_at: datetime


class FeedDrop(DropRead):
    owner: DropOwner | None = None


class DropCreateResponse(BaseModel):
    drop: DropRead
    drops_this_week: int
    limit: int


class FeedResponse(BaseModel):
    drops: list[FeedDrop]
    next_cursor: str | None
    has_more: bool


class ValidationCreate(BaseModel):
    """A rating of someone else's active drop."""

    rating: int = Field(..., ge=1, le=5)
    listened: bool = False
    feedback: str | None = Field(None, max_length=500)

    @field_validator("feedback", mode="before")
    @classmethod
    def clean_feedback(cls, v):
        return sanitize_text(v)


class ValidationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    drop_id: uuid.UUID
    validator_id: uuid.UUID
    rating: int
    listened: bool
    feedback: str | None = None
    created_at: datetime


class ValidationResponse(BaseModel):
    validation: ValidationRead


class ResolutionResponse(BaseModel):
    message: str
    resolved: int
    validated: int
    failed: int
    errors: list[str]
