"""SQLAlchemy declarative base and shared mixins for all ORM models.

Provides:
- Base: the DeclarativeBase subclass all models inherit from
- TimestampMixin: created_at / updated_at columns
- JSON_TYPE: JSON column type that becomes JSONB on PostgreSQL
"""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

#: Portable JSON column: JSONB on PostgreSQL, JSON elsewhere (SQLite in tests).
JSON_TYPE = sa.JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Shared declarative base for all RSA Writer models."""


class TimestampMixin:
    """Adds created_at and updated_at columns.

    The repositories copy both values from the domain objects on every
    write; the server default only fires on INSERTs that omit them.
    """

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )
