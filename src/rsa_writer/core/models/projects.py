"""SQLAlchemy ORM model for projects (batch jobs).

A ``Project`` row holds one job: its URL list, the scrape result and
generated copy mappings (JSON columns keyed by URL), and the state machine
fields.
"""

from __future__ import annotations

import uuid
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from rsa_writer.core.models.base import JSON_TYPE, Base, TimestampMixin


class Project(TimestampMixin, Base):
    """A batch job owned by a profile.

    Attributes:
        id: UUID primary key.
        owner_id: Owning profile.
        label: User-supplied project name.
        urls: JSON list of normalized URLs in submission order.
        scrape_results: JSON object URL → scrape result dict.
        generated_copy: JSON object URL → ``{"headlines", "descriptions"}``.
        generation_errors: JSON object URL → failure reason.
        status: ``"pending"``, ``"scraping"``, ``"generating"``,
            ``"completed"`` or ``"failed"``.
        progress_completed: URLs processed so far while scraping.
        progress_total: URLs in the scrape phase.
        phase_seq: Transition counter used to reject out-of-order writes.
        error_message: Why the job failed, when it did.
    """

    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(
        sa.String(255),
        sa.ForeignKey("profiles.owner_id", ondelete="CASCADE"),
        nullable=False,
    )
    label: Mapped[str] = mapped_column(sa.String(255), nullable=False, server_default="")

    urls: Mapped[list] = mapped_column(JSON_TYPE, nullable=False)
    scrape_results: Mapped[dict] = mapped_column(JSON_TYPE, nullable=False, default=dict)
    generated_copy: Mapped[dict] = mapped_column(JSON_TYPE, nullable=False, default=dict)
    generation_errors: Mapped[dict] = mapped_column(JSON_TYPE, nullable=False, default=dict)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        server_default=sa.text("'pending'"),
    )
    progress_completed: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)
    progress_total: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)
    phase_seq: Mapped[int] = mapped_column(
        sa.Integer,
        nullable=False,
        server_default=sa.text("0"),
    )
    error_message: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    __table_args__ = (
        sa.Index("idx_projects_owner_id", "owner_id"),
        sa.Index("idx_projects_status", "status"),
    )
