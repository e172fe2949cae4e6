from typing import List
from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


JSONType = JSON().with_variant(JSONB, "postgresql")

DROP_STATUSES = ("active", "validated", "failed")
REPUTATION_EVENT_TYPES = (
    "drop_created",
    "drop_validated",
    "drop_failed",
    "manual_adjustment",
)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    """Reputation account. The id is the auth service's user id."""

    __tablename__ = "profiles"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bio: Mapped[str | None] = mapped_column(String(500), nullable=True)
    curation_statement: Mapped[str | None] = mapped_column(String(500), nullable=True)
    genre_preferences: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)

    trust_score: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    reputation_available: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("100")
    )
    total_drops: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    # drops resolved as validated
    successful_drops: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_now_utc,
    )

    drops: Mapped[List["Drop"]] = relationship(
        back_populates="owner",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("trust_score >= 0", name="ck_profiles_trust_score_positive"),
        CheckConstraint(
            "reputation_available >= 0", name="ck_profiles_reputation_available_positive"
        ),
    )


class Drop(Base):
    """
    A staked recommendation.

    status moves active -> validated|failed exactly once; resolved_at is set
    in the same transaction.
    """

    __tablename__ = "drops"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # track reference
    track_id: Mapped[str] = mapped_column(String(255), nullable=False)
    platform: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text("'spotify'")
    )
    track_name: Mapped[str] = mapped_column(String(500), nullable=False)
    artist_name: Mapped[str] = mapped_column(String(500), nullable=False)
    album_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    album_art_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    external_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    preview_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    context: Mapped[str] = mapped_column(Text, nullable=False)
    listening_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    genres: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)
    moods: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)

    # staking
    reputation_stake: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active", server_default=text("'active'")
    )
    validation_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    total_rating_sum: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    validation_score: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, server_default=text("0")
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    owner: Mapped["Profile"] = relationship(back_populates="drops")
    validations: Mapped[List["Validation"]] = relationship(
        back_populates="drop",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "reputation_stake >= 10 AND reputation_stake <= 100",
            name="ck_drops_stake_range",
        ),
        CheckConstraint(
            "status IN ('active', 'validated', 'failed')", name="ck_drops_status"
        ),
        CheckConstraint("validation_count >= 0", name="ck_drops_validation_count"),
        CheckConstraint(
            "validation_score >= 0 AND validation_score <= 1",
            name="ck_drops_validation_score_range",
        ),
        Index("ix_drops_resolvable", "status", "expires_at", "validation_count"),
        Index("ix_drops_user_created", "user_id", "created_at"),
        Index("ix_drops_created", "created_at"),
    )


class Validation(Base):
    """One user's rating of one drop."""

    __tablename__ = "drop_validations"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    drop_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("drops.id", ondelete="CASCADE"), nullable=False, index=True
    )
    validator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    listened: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("FALSE")
    )
    feedback: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    drop: Mapped["Drop"] = relationship(back_populates="validations")

    __table_args__ = (
        UniqueConstraint("drop_id", "validator_id", name="ux_drop_validations_validator"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_drop_validations_rating"),
    )


class ReputationEvent(Base):
    """Append-only ledger of every balance-affecting transition."""

    __tablename__ = "reputation_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    points_change: Mapped[int] = mapped_column(Integer, nullable=False)
    new_trust_score: Mapped[int] = mapped_column(Integer, nullable=False)
    new_reputation_available: Mapped[int] = mapped_column(Integer, nullable=False)
    related_drop_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("drops.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[dict | None] = mapped_column(
        "metadata", JSONType, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint(
            "event_type IN ('drop_created', 'drop_validated', 'drop_failed', 'manual_adjustment')",
            name="ck_reputation_events_type",
        ),
        CheckConstraint("new_trust_score >= 0", name="ck_reputation_events_trust_positive"),
        Index("ix_reputation_events_user_created", "user_id", "created_at"),
        # At most one terminal entry per drop
        Index(
            "ux_reputation_events_drop_resolution",
            "related_drop_id",
            unique=True,
            postgresql_where=text("event_type IN ('drop_validated', 'drop_failed')"),
            sqlite_where=text("event_type IN ('drop_validated', 'drop_failed')"),
        ),
    )
