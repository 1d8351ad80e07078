"""Snapshot the tier on progressive discount redemptions.

Revision ID: 20261019_02
Revises: 20261019_01
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261019_02"
down_revision: Union[str, None] = "20261019_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("reward_redemptions", sa.Column("rank_name", sa.String(length=50), nullable=True))
    op.add_column("reward_redemptions", sa.Column("discount_pct", sa.Numeric(5, 2), nullable=True))
    op.execute(
        """
        UPDATE reward_redemptions
        SET rank_name = (SELECT ranks.name FROM ranks WHERE ranks.id = reward_redemptions.rank_id),
            discount_pct = (SELECT ranks.discount_pct FROM ranks WHERE ranks.id = reward_redemptions.rank_id)
        WHERE rank_id IS NOT NULL
        """
    )


def downgrade() -> None:
    op.drop_column("reward_redemptions", "discount_pct")
    op.drop_column("reward_redemptions", "rank_name")
