"""Run marker table for once-per-day coaching runs."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20251019_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "run_markers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("run_date", sa.Date(), nullable=False),
        sa.Column("workout_type", sa.String(length=64), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_run_markers_run_date", "run_markers", ["run_date"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_run_markers_run_date", table_name="run_markers")
    op.drop_table("run_markers")
