"""add successful_drops to profiles

Revision ID: c5e8f2a1d6b3
Revises: a3d1c9e4b7f2
Create Date: 2026-10-19 14:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "c5e8f2a1d6b3"
down_revision: Union[str, Sequence[str], None] = "a3d1c9e4b7f2"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "profiles",
        sa.Column(
            "successful_drops", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
    )
    # backfill from drops already resolved as validated
    op.execute(
        """
        UPDATE profiles
        SET successful_drops = (
            SELECT COUNT(*) FROM drops
            WHERE drops.user_id = profiles.id AND drops.status = 'validated'
        )
        """
    )


def downgrade() -> None:
    op.drop_column("profiles", "successful_drops")
