"""Add committee membership fields to users.

Revision ID: 0002_committee_members
Revises: 0001_initial
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op


def _get_inspector():
    bind = op.get_bind()
    return sa.inspect(bind)


revision = "0002_committee_members"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    inspector = _get_inspector()
    user_columns = {col["name"] for col in inspector.get_columns("users")}

    if "committee_type" not in user_columns:
        op.add_column("users", sa.Column("committee_type", sa.String(), nullable=True))
    if "committee_position" not in user_columns:
        op.add_column("users", sa.Column("committee_position", sa.String(), nullable=True))


def downgrade() -> None:
    inspector = _get_inspector()
    user_columns = {col["name"] for col in inspector.get_columns("users")}

    with op.batch_alter_table("users") as batch_op:
        if "committee_position" in user_columns:
            batch_op.drop_column("committee_position")
        if "committee_type" in user_columns:
            batch_op.drop_column("committee_type")
