"""defence sittings

Revision ID: 0002_defences
Revises: 0001_initial
Create Date: 2026-10-17 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0002_defences"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "defences",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("stage", sa.String(length=32), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(), nullable=False),
        sa.Column("venue", sa.String(length=255), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "ended_at IS NULL OR started_at IS NOT NULL", name="ck_defence_started_before_end"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_defences_stage", "defences", ["stage"], unique=False)

    op.create_table(
        "defence_students",
        sa.Column("defence_id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["defence_id"], ["defences.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("defence_id", "student_id"),
    )


def downgrade() -> None:
    op.drop_table("defence_students")
    op.drop_index("ix_defences_stage", table_name="defences")
    op.drop_table("defences")
