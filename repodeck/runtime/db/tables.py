"""SQLAlchemy ORM models for PostgreSQL.

These are the single source of truth for the database schema.  Alembic reads
``Base.metadata`` to autogenerate migration scripts.

Uses SQLAlchemy 2.0 declarative style with ``Mapped`` type annotations.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Timezone-aware timestamp type for all datetime columns.
TimestampTZ = DateTime(timezone=True)


class Base(DeclarativeBase):
    """Declarative base with naming convention for constraints."""

    pass


# Apply naming convention to the metadata for deterministic constraint names.
Base.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Workspace(Base):
    __tablename__ = "workspaces"
    __table_args__ = (
        # A missing branch is its own bucket: (url, NULL) may appear only once.
        UniqueConstraint(
            "repository_url",
            "branch",
            name="uq_workspaces_repository_url_branch",
            postgresql_nulls_not_distinct=True,
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    repository_url: Mapped[str] = mapped_column(Text, nullable=False)
    local_path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    branch: Mapped[str | None] = mapped_column(Text)
    default_branch: Mapped[str] = mapped_column(Text, nullable=False, server_default="main")
    clone_status: Mapped[str] = mapped_column(Text, nullable=False, server_default="cloning")
    cloned_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())
    last_pulled: Mapped[datetime | None] = mapped_column(TimestampTZ)
    config_name: Mapped[str | None] = mapped_column(Text)
    is_worktree: Mapped[bool] = mapped_column(default=False, server_default="false")
