"""SQLAlchemy ORM model for credit accounts (profiles)."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from rsa_writer.core.models.base import Base, TimestampMixin


class Profile(TimestampMixin, Base):
    """The credit account of one owner.

    Attributes:
        owner_id: External identity of the owner (primary key).
        membership: Tier string, one of :class:`rsa_writer.config.tiers.Tier`.
        credit_units: Balance in half-credit units.  Integer so that no
            floating-point value is ever stored.
    """

    __tablename__ = "profiles"

    owner_id: Mapped[str] = mapped_column(sa.String(255), primary_key=True)
    membership: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        server_default=sa.text("'free'"),
    )
    credit_units: Mapped[int] = mapped_column(
        sa.Integer,
        nullable=False,
        server_default=sa.text("10"),
    )

    __table_args__ = (
        sa.CheckConstraint("credit_units >= 0", name="ck_profiles_credit_units_non_negative"),
    )
