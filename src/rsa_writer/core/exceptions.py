"""Application-wide exception hierarchy for RSA Writer.

All custom exceptions subclass ``RsaWriterError``, enabling consistent
error handling and structured logging across the pipeline.  Caller-facing
operations in :mod:`rsa_writer.pipeline` catch this base class and turn it
into a failure result; nothing below crosses that boundary.

Hierarchy::

    RsaWriterError
    ├── UrlValidationError
    ├── AdmissionError
    │   ├── InsufficientCreditError
    │   └── BatchSizeExceededError
    ├── ProviderError
    │   ├── ProviderRateLimitError   (retry_after: float)
    │   └── ProviderAuthError
    ├── ParseError
    ├── PhaseExhaustionError
    ├── PersistenceError
    ├── InvalidTransitionError
    ├── JobNotFoundError
    └── AccountNotFoundError
"""

from __future__ import annotations


class RsaWriterError(Exception):
    """Base class for all RSA Writer exceptions."""


# ---------------------------------------------------------------------------
# Pre-batch rejections (free of charge)
# ---------------------------------------------------------------------------


class UrlValidationError(RsaWriterError):
    """Raised when the submitted text contains no acceptable URL.

    Args:
        message: Human-readable description.
        rejected: The original lines that failed validation.
    """

    def __init__(self, message: str, rejected: list[str] | None = None) -> None:
        super().__init__(message)
        self.rejected = rejected or []


class AdmissionError(RsaWriterError):
    """Base class for admission-control rejections."""


class InsufficientCreditError(AdmissionError):
    """Raised when an account cannot afford the requested unit count.

    Amounts are half-credit units.

    Args:
        required: Units the phase would cost if every URL succeeded.
        available: Units currently on the account.
        owner_id: Account owner (for logging).
    """

    def __init__(
        self,
        required: int,
        available: int,
        owner_id: str | None = None,
    ) -> None:
        from rsa_writer.core.credits import format_credits  # noqa: PLC0415

        super().__init__(
            f"Insufficient credits: {format_credits(required)} needed, "
            f"{format_credits(available)} available"
        )
        self.required = required
        self.available = available
        self.owner_id = owner_id


class BatchSizeExceededError(AdmissionError):
    """Raised when a metered tier submits more URLs than its batch cap.

    Args:
        requested: Number of URLs in the phase.
        limit: The tier's ``max_urls_per_batch``.
        tier: Tier string.
    """

    def __init__(self, requested: int, limit: int, tier: str | None = None) -> None:
        msg = f"Batch of {requested} URLs exceeds the limit of {limit}"
        if tier:
            msg += f" for the '{tier}' plan"
        super().__init__(msg)
        self.requested = requested
        self.limit = limit
        self.tier = tier


# ---------------------------------------------------------------------------
# Provider exceptions (URL-scoped, captured as data by orchestrators)
# ---------------------------------------------------------------------------


class ProviderError(RsaWriterError):
    """Raised when a content-retrieval or text-generation call fails.

    Args:
        message: Human-readable description of the failure.
        provider: Provider identifier (e.g. ``"firecrawl"``, ``"openai"``).
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class ProviderRateLimitError(ProviderError):
    """Raised when a provider answers HTTP 429.

    Args:
        message: Human-readable description of the rate limit.
        retry_after: Seconds the provider asked us to wait. Defaults to 60.
        provider: Provider identifier.
    """

    def __init__(
        self,
        message: str,
        retry_after: float = 60.0,
        provider: str | None = None,
    ) -> None:
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


class ProviderAuthError(ProviderError):
    """Raised when a provider rejects the configured API key."""


class ParseError(RsaWriterError):
    """Raised when a generation response cannot be decoded into copy.

    Args:
        message: Why parsing failed.
        url: The URL whose response was being parsed.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


# ---------------------------------------------------------------------------
# Phase and job exceptions
# ---------------------------------------------------------------------------


class PhaseExhaustionError(RsaWriterError):
    """Raised when a whole phase ends with zero successes.

    Args:
        message: Human-readable description.
        phase: ``"scrape"`` or ``"generate"``.
    """

    def __init__(self, message: str, phase: str | None = None) -> None:
        super().__init__(message)
        self.phase = phase


class PersistenceError(RsaWriterError):
    """Raised when the job or account store cannot be read or written."""


class InvalidTransitionError(RsaWriterError):
    """Raised when a job status change is not an edge of the state machine.

    Args:
        current: Status the job is in.
        target: Status that was requested.
    """

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move job from '{current}' to '{target}'")
        self.current = current
        self.target = target


class JobNotFoundError(RsaWriterError):
    """Raised when a job id does not resolve to a stored job."""

    def __init__(self, job_id: str) -> None:
        super().__init__("Project not found")
        self.job_id = job_id


class AccountNotFoundError(RsaWriterError):
    """Raised when an owner has no account record."""

    def __init__(self, owner_id: str) -> None:
        super().__init__("Account not found")
        self.owner_id = owner_id
