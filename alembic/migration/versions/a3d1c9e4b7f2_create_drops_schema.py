"""create profiles, drops, validations and reputation ledger

Revision ID: a3d1c9e4b7f2
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "a3d1c9e4b7f2"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("bio", sa.String(length=500), nullable=True),
        sa.Column("curation_statement", sa.String(length=500), nullable=True),
        sa.Column("genre_preferences", postgresql.JSONB(), nullable=True),
        sa.Column("trust_score", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "reputation_available", sa.Integer(), server_default=sa.text("100"), nullable=False
        ),
        sa.Column("total_drops", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint("trust_score >= 0", name="ck_profiles_trust_score_positive"),
        sa.CheckConstraint(
            "reputation_available >= 0", name="ck_profiles_reputation_available_positive"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_profiles"),
    )
    op.create_index("ix_profiles_username", "profiles", ["username"], unique=True)

    op.create_table(
        "drops",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("track_id", sa.String(length=255), nullable=False),
        sa.Column(
            "platform", sa.String(length=32), server_default=sa.text("'spotify'"), nullable=False
        ),
        sa.Column("track_name", sa.String(length=500), nullable=False),
        sa.Column("artist_name", sa.String(length=500), nullable=False),
        sa.Column("album_name", sa.String(length=500), nullable=True),
        sa.Column("album_art_url", sa.String(length=1024), nullable=True),
        sa.Column("external_url", sa.String(length=1024), nullable=True),
        sa.Column("preview_url", sa.String(length=1024), nullable=True),
        sa.Column("context", sa.Text(), nullable=False),
        sa.Column("listening_notes", sa.Text(), nullable=True),
        sa.Column("genres", postgresql.JSONB(), nullable=True),
        sa.Column("moods", postgresql.JSONB(), nullable=True),
        sa.Column("reputation_stake", sa.Integer(), nullable=False),
        sa.Column(
            "status", sa.String(length=20), server_default=sa.text("'active'"), nullable=False
        ),
        sa.Column("validation_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("total_rating_sum", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("validation_score", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "reputation_stake >= 10 AND reputation_stake <= 100", name="ck_drops_stake_range"
        ),
        sa.CheckConstraint("status IN ('active', 'validated', 'failed')", name="ck_drops_status"),
        sa.CheckConstraint("validation_count >= 0", name="ck_drops_validation_count"),
        sa.CheckConstraint(
            "validation_score >= 0 AND validation_score <= 1",
            name="ck_drops_validation_score_range",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE", name="fk_drops_user_id_profiles"),
        sa.PrimaryKeyConstraint("id", name="pk_drops"),
    )
    op.create_index("ix_drops_user_id", "drops", ["user_id"], unique=False)
    op.create_index(
        "ix_drops_resolvable", "drops", ["status", "expires_at", "validation_count"], unique=False
    )
    op.create_index("ix_drops_user_created", "drops", ["user_id", "created_at"], unique=False)
    op.create_index("ix_drops_created", "drops", ["created_at"], unique=False)

    op.create_table(
        "drop_validations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("drop_id", sa.Uuid(), nullable=False),
        sa.Column("validator_id", sa.Uuid(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("listened", sa.Boolean(), server_default=sa.text("FALSE"), nullable=False),
        sa.Column("feedback", sa.String(length=500), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_drop_validations_rating"),
        sa.ForeignKeyConstraint(["drop_id"], ["drops.id"], ondelete="CASCADE", name="fk_drop_validations_drop_id_drops"),
        sa.ForeignKeyConstraint(["validator_id"], ["profiles.id"], ondelete="CASCADE", name="fk_drop_validations_validator_id_profiles"),
        sa.PrimaryKeyConstraint("id", name="pk_drop_validations"),
        sa.UniqueConstraint("drop_id", "validator_id", name="ux_drop_validations_validator"),
    )
    op.create_index("ix_drop_validations_drop_id", "drop_validations", ["drop_id"], unique=False)
    op.create_index(
        "ix_drop_validations_validator_id", "drop_validations", ["validator_id"], unique=False
    )

    op.create_table(
        "reputation_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("points_change", sa.Integer(), nullable=False),
        sa.Column("new_trust_score", sa.Integer(), nullable=False),
        sa.Column("new_reputation_available", sa.Integer(), nullable=False),
        sa.Column("related_drop_id", sa.Uuid(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "event_type IN ('drop_created', 'drop_validated', 'drop_failed', 'manual_adjustment')",
            name="ck_reputation_events_type",
        ),
        sa.CheckConstraint("new_trust_score >= 0", name="ck_reputation_events_trust_positive"),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE", name="fk_reputation_events_user_id_profiles"),
        sa.ForeignKeyConstraint(["related_drop_id"], ["drops.id"], ondelete="SET NULL", name="fk_reputation_events_related_drop_id_drops"),
        sa.PrimaryKeyConstraint("id", name="pk_reputation_events"),
    )
    op.create_index("ix_reputation_events_user_id", "reputation_events", ["user_id"], unique=False)
    op.create_index(
        "ix_reputation_events_related_drop_id",
        "reputation_events",
        ["related_drop_id"],
        unique=False,
    )
    op.create_index(
        "ix_reputation_events_user_created",
        "reputation_events",
        ["user_id", "created_at"],
        unique=False,
    )
    op.create_index(
        "ux_reputation_events_drop_resolution",
        "reputation_events",
        ["related_drop_id"],
        unique=True,
        postgresql_where=sa.text("event_type IN ('drop_validated', 'drop_failed')"),
    )


def downgrade() -> None:
    op.drop_index("ux_reputation_events_drop_resolution", table_name="reputation_events")
    op.drop_index("ix_reputation_events_user_created", table_name="reputation_events")
    op.drop_index("ix_reputation_events_related_drop_id", table_name="reputation_events")
    op.drop_index("ix_reputation_events_user_id", table_name="reputation_events")
    op.drop_table("reputation_events")
    op.drop_index("ix_drop_validations_validator_id", table_name="drop_validations")
    op.drop_index("ix_drop_validations_drop_id", table_name="drop_validations")
    op.drop_table("drop_validations")
    op.drop_index("ix_drops_created", table_name="drops")
    op.drop_index("ix_drops_user_created", table_name="drops")
    op.drop_index("ix_drops_resolvable", table_name="drops")
    op.drop_index("ix_drops_user_id", table_name="drops")
    op.drop_table("drops")
    op.drop_index("ix_profiles_username", table_name="profiles")
    op.drop_table("profiles")
