"""Pydantic models for jobs, accounts and pipeline results.

These are the shapes handed between the pipeline components and the
persistence collaborator.  Components never keep them between calls: each
operation receives the full state it needs and returns updated copies for
the caller to persist.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from rsa_writer.config.tiers import DEFAULT_STARTING_BALANCE, Tier

#: Upper bounds on stored copy, matching what Google Ads accepts per RSA.
MAX_HEADLINES: int = 15
MAX_DESCRIPTIONS: int = 4


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


class JobStatus(str, Enum):
    """Discrete lifecycle states of a job.

    Progress counts are kept in :class:`JobProgress`, never in this value.
    """

    PENDING = "pending"
    SCRAPING = "scraping"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class JobProgress(BaseModel):
    """Items processed so far in an in-flight scrape phase."""

    model_config = ConfigDict(frozen=True)

    completed: int = Field(ge=0)
    total: int = Field(ge=0)


class ScrapeResult(BaseModel):
    """Outcome of fetching one URL.

    Created once per URL per scrape attempt and never mutated afterwards.

    Attributes:
        url: The normalized URL that was fetched.
        success: Whether the provider returned usable content.
        content: Page content (markdown) on success.
        metadata: Provider key/value metadata (title, description...) on success.
        error: Short failure description on failure.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    success: bool
    content: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def ok(cls, url: str, content: str | None, metadata: dict[str, Any] | None = None) -> ScrapeResult:
        return cls(url=url, success=True, content=content or "", metadata=metadata or {})

    @classmethod
    def failed(cls, url: str, error: str) -> ScrapeResult:
        return cls(url=url, success=False, error=error)


class GeneratedCopy(BaseModel):
    """Headlines and descriptions generated (or edited) for one URL."""

    headlines: list[str] = Field(default_factory=list, max_length=MAX_HEADLINES)
    descriptions: list[str] = Field(default_factory=list, max_length=MAX_DESCRIPTIONS)


class Account(BaseModel):
    """Credit account of a job owner.

    ``balance`` is in half-credit units (see :mod:`rsa_writer.core.credits`).
    """

    owner_id: str
    tier: Tier = Tier.FREE
    balance: int = Field(default=DEFAULT_STARTING_BALANCE, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Job(BaseModel):
    """A batch of URLs and everything produced for them.

    Attributes:
        id: Job identifier.
        owner_id: Owner of the job and of the account it is billed to.
        label: User-supplied project name.
        urls: Unique normalized URLs in submission order; immutable.
        scrape_results: URL → result of the scrape attempt.
        generated_copy: URL → copy; only URLs with a successful scrape.
        generation_errors: URL → reason for the latest failed generation.
        status: Current :class:`JobStatus`.
        progress: Current/total counters while scraping.
        phase_seq: Incremented on every status transition; stores use it to
            refuse writes that belong to an earlier phase.
        error_message: Why the job failed, when it did.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    owner_id: str
    label: str = ""
    urls: tuple[str, ...]
    scrape_results: dict[str, ScrapeResult] = Field(default_factory=dict)
    generated_copy: dict[str, GeneratedCopy] = Field(default_factory=dict)
    generation_errors: dict[str, str] = Field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    progress: Optional[JobProgress] = None
    phase_seq: int = 0
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_invariants(self) -> Job:
        if len(set(self.urls)) != len(self.urls):
            raise ValueError("job urls must be unique")
        for url in self.generated_copy:
            result = self.scrape_results.get(url)
            if result is None or not result.success:
                raise ValueError(f"generated copy for {url} has no successful scrape result")
        return self

    def successful_urls(self) -> list[str]:
        """URLs with a successful scrape result, in job order."""
        return [
            url for url in self.urls
            if (result := self.scrape_results.get(url)) is not None and result.success
        ]

    def failed_urls(self) -> list[str]:
        """URLs whose scrape attempt failed, in job order."""
        return [
            url for url in self.urls
            if (result := self.scrape_results.get(url)) is not None and not result.success
        ]


# ---------------------------------------------------------------------------
# Caller-facing result shapes
# ---------------------------------------------------------------------------

DataT = TypeVar("DataT")


class ActionResult(BaseModel, Generic[DataT]):
    """Uniform return value of every caller-facing operation.

    Either ``is_success`` with ``data``, or a failure with a human-readable
    ``message``.  Operations never raise across this boundary.
    """

    is_success: bool
    message: str
    data: Optional[DataT] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> ActionResult[Any]:
        return cls(is_success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str) -> ActionResult[Any]:
        return cls(is_success=False, message=message)


class SubmitBatchData(BaseModel):
    """Payload of a successful batch submission.

    ``rejected_urls`` lists every submitted line that produced no content:
    lines that failed validation followed by URLs whose fetch failed.
    """

    job_id: uuid.UUID
    rejected_urls: list[str] = Field(default_factory=list)
    failed_urls: list[str] = Field(default_factory=list)
    scraped_count: int = 0


class GenerateAllData(BaseModel):
    """Payload of a successful whole-job generation."""

    job_id: uuid.UUID
    generated_count: int
    failed_urls: list[str] = Field(default_factory=list)


class GenerateSingleData(BaseModel):
    """Payload of a successful single-URL generation or edit."""

    job_id: uuid.UUID
    url: str
    generated_copy: GeneratedCopy
