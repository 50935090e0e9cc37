"""create workspaces table

Revision ID: 0001
Revises:
Create Date: 2026-10-17

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create workspaces table."""
    op.create_table(
        "workspaces",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("repository_url", sa.Text(), nullable=False),
        sa.Column("local_path", sa.Text(), nullable=False),
        sa.Column("branch", sa.Text(), nullable=True),
        sa.Column("default_branch", sa.Text(), server_default="main", nullable=False),
        sa.Column("clone_status", sa.Text(), server_default="cloning", nullable=False),
        sa.Column("cloned_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("last_pulled", sa.DateTime(timezone=True), nullable=True),
        sa.Column("config_name", sa.Text(), nullable=True),
        sa.Column("is_worktree", sa.Boolean(), server_default="false", nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_workspaces")),
        sa.UniqueConstraint("local_path", name=op.f("uq_workspaces_local_path")),
        sa.UniqueConstraint(
            "repository_url",
            "branch",
            name="uq_workspaces_repository_url_branch",
            postgresql_nulls_not_distinct=True,
        ),
    )


def downgrade() -> None:
    """Drop workspaces table."""
    op.drop_table("workspaces")
