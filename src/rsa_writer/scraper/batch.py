"""Chunked, bounded-concurrency batch fetch with progress reporting.

The URL list is split into sequential chunks of ``concurrency`` URLs.  Every
fetch in a chunk runs concurrently and the chunk is awaited as a whole before
the next one starts, so no more than ``concurrency`` fetches are ever in
flight.  Results are collected positionally, never by completion order.

A failing fetch never cancels its siblings: provider errors and unexpected
exceptions are both turned into ``ScrapeResult(success=False)`` records.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Optional, Union

from rsa_writer.core.exceptions import ProviderError
from rsa_writer.core.schemas import ScrapeResult
from rsa_writer.scraper.config import DEFAULT_CONCURRENCY, REASON_UNEXPECTED
from rsa_writer.scraper.provider import ContentProvider, failure_reason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchProgress:
    """Snapshot handed to the progress callback after each chunk.

    Attributes:
        completed: URLs with a result so far.
        total: URLs in the batch.
        results: Copies of the results so far, in input order.  Mutating
            them has no effect on the batch.
    """

    completed: int
    total: int
    results: list[ScrapeResult] = field(default_factory=list)


ProgressCallback = Callable[[BatchProgress], Union[None, Awaitable[None]]]


class BatchScraper:
    """Runs a :class:`ContentProvider` over a list of URLs.

    Args:
        provider: The content-retrieval provider.
        concurrency: Maximum fetches in flight at once (chunk size).
    """

    def __init__(self, provider: ContentProvider, concurrency: int = DEFAULT_CONCURRENCY) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._provider = provider
        self._concurrency = concurrency

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def scrape(
        self,
        urls: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[ScrapeResult]:
        """Fetch every URL and return one result per URL, in input order.

        Args:
            urls: Normalized, unique URLs.
            on_progress: Optional sync or async callback invoked after each
                chunk.  Its exceptions are logged and swallowed.

        Returns:
            A list with ``len(urls)`` entries where ``result[i].url == urls[i]``.
        """
        total = len(urls)
        results: list[ScrapeResult] = []
        chunk_count = (total + self._concurrency - 1) // self._concurrency

        logger.info(
            "scraper: starting batch",
            extra={"total": total, "concurrency": self._concurrency},
        )

        for index, start in enumerate(range(0, total, self._concurrency), start=1):
            chunk = urls[start:start + self._concurrency]
            chunk_results = await asyncio.gather(*(self._fetch_safely(url) for url in chunk))
            results.extend(chunk_results)

            if on_progress is not None:
                snapshot = BatchProgress(
                    completed=len(results),
                    total=total,
                    results=[result.model_copy(deep=True) for result in results],
                )
                await self._notify(on_progress, snapshot)

            logger.debug("scraper: completed chunk %d/%d", index, chunk_count)

        succeeded = sum(1 for result in results if result.success)
        logger.info(
            "scraper: batch finished",
            extra={"total": total, "succeeded": succeeded, "failed": total - succeeded},
        )
        return results

    async def _fetch_safely(self, url: str) -> ScrapeResult:
        try:
            result = await self._provider.fetch_one(url)
        except ProviderError as exc:
            logger.warning("scraper: provider error for %s: %s", url, exc)
            return ScrapeResult.failed(url, failure_reason(exc))
        except Exception as exc:  # noqa: BLE001
            logger.warning("scraper: unexpected error for %s: %s", url, exc, exc_info=True)
            return ScrapeResult.failed(url, REASON_UNEXPECTED)

        # Results are keyed by the requested URL even if the provider followed a redirect.
        if result.url != url:
            result = result.model_copy(update={"url": url})
        return result

    async def _notify(self, callback: ProgressCallback, progress: BatchProgress) -> None:
        try:
            outcome = callback(progress)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "scraper: progress callback failed: %s",
                exc,
                extra={"completed": progress.completed, "total": progress.total},
            )
