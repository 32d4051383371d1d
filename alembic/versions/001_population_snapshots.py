"""Create population_snapshots table

Revision ID: 001_population_snapshots
Revises:
Create Date: 2026-10-18

Adds:
  - population_snapshots (append-only grading population history)
  - ix_population_snapshots_lookup (card_key, grading_company, target_grade, fetched_at)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_population_snapshots"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "population_snapshots",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("card_key", sa.String(), nullable=False),
        sa.Column("grading_company", sa.String(), nullable=False),
        sa.Column("target_grade", sa.String(), nullable=False),
        sa.Column("total_graded", sa.INTEGER(), nullable=False),
        sa.Column("grade_breakdown", sa.JSON(), nullable=False),
        sa.Column("target_grade_pop", sa.INTEGER(), nullable=False),
        sa.Column("higher_grade_pop", sa.INTEGER(), nullable=False),
        sa.Column("percentile", sa.FLOAT(), nullable=False),
        sa.Column("rarity_tier", sa.String(), nullable=False),
        sa.Column("fetched_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_population_snapshots_lookup",
        "population_snapshots",
        ["card_key", "grading_company", "target_grade", "fetched_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_population_snapshots_lookup", table_name="population_snapshots")
    op.drop_table("population_snapshots")
