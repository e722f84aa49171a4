"""Sequential, partial-failure-tolerant ad-copy generation.

URLs are processed one at a time, in job order: generation providers are
rate-sensitive, so there is no fan-out here.  For every URL:

- no scrape result, or a failed one: skipped and logged;
- provider error or unparseable response: recorded as a per-URL failure;
- otherwise the parsed copy is handed to the optional ``on_copy`` callback
  (the pipeline merges it into the stored job) and recorded as generated.

Nothing a single URL does can abort the loop.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Optional

from rsa_writer.core.exceptions import (
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
)
from rsa_writer.core.schemas import MAX_DESCRIPTIONS, MAX_HEADLINES, GeneratedCopy, ScrapeResult
from rsa_writer.generation.config import (
    REASON_AUTH,
    REASON_PARSE,
    REASON_PROVIDER,
    REASON_RATE_LIMITED,
    REASON_SAVE,
)
from rsa_writer.generation.parser import ParseFailed, parse_copy_response
from rsa_writer.generation.prompt import build_prompt
from rsa_writer.generation.provider import GenerationProvider

logger = logging.getLogger(__name__)

CopyCallback = Callable[[str, GeneratedCopy], Awaitable[None]]


@dataclass(frozen=True)
class UrlOutcome:
    """Result of generating copy for one URL: either ``copy`` or ``error``."""

    url: str
    copy: Optional[GeneratedCopy] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.copy is not None


@dataclass
class GenerationReport:
    """Everything a generation pass produced.

    Attributes:
        copies: URL → generated copy, in job order.
        failures: URL → short failure reason.
        skipped: URLs without a successful scrape result.
    """

    copies: dict[str, GeneratedCopy] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def eligible_count(self) -> int:
        return len(self.copies) + len(self.failures)

    @property
    def generated_count(self) -> int:
        return len(self.copies)


def _provider_reason(exc: ProviderError) -> str:
    if isinstance(exc, ProviderRateLimitError):
        return REASON_RATE_LIMITED
    if isinstance(exc, ProviderAuthError):
        return REASON_AUTH
    return REASON_PROVIDER


class CopyGenerator:
    """Drives a :class:`GenerationProvider` over a job's scrape results.

    Args:
        provider: The text-generation provider.
        max_headlines: Headlines requested and kept per URL.
        max_descriptions: Descriptions requested and kept per URL.
        headline_chars: Headline length requested in the prompt.
        description_chars: Description length requested in the prompt.
    """

    def __init__(
        self,
        provider: GenerationProvider,
        *,
        max_headlines: int = MAX_HEADLINES,
        max_descriptions: int = MAX_DESCRIPTIONS,
        headline_chars: int = 30,
        description_chars: int = 90,
    ) -> None:
        self._provider = provider
        self._max_headlines = min(max_headlines, MAX_HEADLINES)
        self._max_descriptions = min(max_descriptions, MAX_DESCRIPTIONS)
        self._headline_chars = headline_chars
        self._description_chars = description_chars

    async def generate_one(self, url: str, result: ScrapeResult) -> UrlOutcome:
        """Generate copy for one successfully scraped URL.  Never raises."""
        prompt = build_prompt(
            url,
            result,
            max_headlines=self._max_headlines,
            max_descriptions=self._max_descriptions,
            headline_chars=self._headline_chars,
            description_chars=self._description_chars,
        )
        try:
            response = await self._provider.generate(prompt)
        except ProviderError as exc:
            logger.warning("generation: provider error for %s: %s", url, exc)
            return UrlOutcome(url=url, error=_provider_reason(exc))
        except Exception as exc:  # noqa: BLE001
            logger.warning("generation: unexpected error for %s: %s", url, exc, exc_info=True)
            return UrlOutcome(url=url, error=REASON_PROVIDER)

        parsed = parse_copy_response(
            response,
            max_headlines=self._max_headlines,
            max_descriptions=self._max_descriptions,
        )
        if isinstance(parsed, ParseFailed):
            logger.warning(
                "generation: could not parse response for %s: %s",
                url,
                parsed.reason,
                extra={"response_preview": (response or "")[:200]},
            )
            return UrlOutcome(url=url, error=f"{REASON_PARSE}: {parsed.reason}")

        logger.info(
            "generation: generated copy for %s",
            url,
            extra={
                "headlines": len(parsed.headlines),
                "descriptions": len(parsed.descriptions),
            },
        )
        return UrlOutcome(url=url, copy=parsed.to_generated_copy())

    async def generate_all(
        self,
        urls: Sequence[str],
        scrape_results: Mapping[str, ScrapeResult],
        on_copy: Optional[CopyCallback] = None,
    ) -> GenerationReport:
        """Generate copy for every successfully scraped URL, sequentially.

        Args:
            urls: Job URLs in order.
            scrape_results: URL → scrape result for the job.
            on_copy: Optional async callback run after each success.  If it
                raises, the URL is recorded as failed and the loop continues.

        Returns:
            A :class:`GenerationReport`.
        """
        report = GenerationReport()
        for url in urls:
            result = scrape_results.get(url)
            if result is None or not result.success:
                logger.info("generation: skipping %s (no scraped data)", url)
                report.skipped.append(url)
                continue

            outcome = await self.generate_one(url, result)
            if outcome.copy is None:
                report.failures[url] = outcome.error or REASON_PROVIDER
                continue

            if on_copy is not None:
                try:
                    await on_copy(url, outcome.copy)
                except Exception as exc:  # noqa: BLE001
                    logger.warning("generation: could not store copy for %s: %s", url, exc)
                    report.failures[url] = REASON_SAVE
                    continue

            report.copies[url] = outcome.copy

        logger.info(
            "generation: pass finished",
            extra={
                "generated": report.generated_count,
                "failed": len(report.failures),
                "skipped": len(report.skipped),
            },
        )
        return report
