"""Capability contract of a content-retrieval provider."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from rsa_writer.core.exceptions import ProviderAuthError, ProviderError, ProviderRateLimitError
from rsa_writer.core.schemas import ScrapeResult
from rsa_writer.scraper.config import REASON_AUTH, REASON_PROVIDER, REASON_RATE_LIMITED


@runtime_checkable
class ContentProvider(Protocol):
    """Fetches the content of one URL at a time.

    :class:`~rsa_writer.scraper.batch.BatchScraper` builds batching,
    concurrency and progress on top of these single-item calls.
    """

    def validate(self, url: str) -> bool:
        """Return ``True`` if the provider is willing to fetch *url*."""
        ...

    async def fetch_one(self, url: str) -> ScrapeResult:
        """Fetch *url*.

        Implementations should report failures as
        ``ScrapeResult(success=False)``; a raised exception is also tolerated
        and converted to a failure record by the batch orchestrator.
        """
        ...


def failure_reason(exc: ProviderError) -> str:
    """Map a provider exception to the stable reason stored on the result."""
    if isinstance(exc, ProviderRateLimitError):
        return REASON_RATE_LIMITED
    if isinstance(exc, ProviderAuthError):
        return REASON_AUTH
    return REASON_PROVIDER
