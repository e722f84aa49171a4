"""Shared pytest fixtures for RSA Writer tests.

Fixture summary
---------------
settings             - Settings built without reading the environment or .env.
content_provider     - Deterministic in-process content-retrieval double.
generation_provider  - Deterministic in-process text-generation double.
job_repo             - Empty in-memory job repository.
account_repo         - In-memory account repository holding ``OWNER_ID``.
pipeline             - PipelineService wired to all of the above.

No fixture touches the network.  SQL store tests build their own in-memory
aiosqlite engine.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable
from typing import Optional

import pytest

from rsa_writer.config.settings import Settings
from rsa_writer.config.tiers import Tier
from rsa_writer.core.exceptions import ProviderError
from rsa_writer.core.schemas import Account, ScrapeResult
from rsa_writer.core.store import InMemoryAccountRepository, InMemoryJobRepository
from rsa_writer.pipeline import PipelineService

OWNER_ID = "user_test_1"


# ---------------------------------------------------------------------------
# Provider doubles
# ---------------------------------------------------------------------------


class FakeContentProvider:
    """Content provider double that records concurrency.

    Args:
        failing: URLs answered with ``ScrapeResult(success=False)``.
        raising: URLs whose fetch raises :class:`ProviderError`.
        latency: URL → seconds to sleep before answering.
    """

    def __init__(
        self,
        *,
        failing: Iterable[str] = (),
        raising: Iterable[str] = (),
        latency: Optional[dict[str, float]] = None,
    ) -> None:
        self.failing = set(failing)
        self.raising = set(raising)
        self.latency = latency or {}
        self.calls: list[str] = []
        self.in_flight = 0
        self.high_water_mark = 0

    def validate(self, url: str) -> bool:
        return True

    async def fetch_one(self, url: str) -> ScrapeResult:
        self.calls.append(url)
        self.in_flight += 1
        self.high_water_mark = max(self.high_water_mark, self.in_flight)
        try:
            await asyncio.sleep(self.latency.get(url, 0))
            if url in self.raising:
                raise ProviderError("fake: connection reset", provider="fake")
            if url in self.failing:
                return ScrapeResult.failed(url, "HTTP 500")
            return ScrapeResult.ok(
                url,
                content=f"# Product page for {url}",
                metadata={"title": f"Title of {url}"},
            )
        finally:
            self.in_flight -= 1


def copy_response(headlines: int = 15, descriptions: int = 4) -> str:
    """Build a well-formed provider response with numbered items."""
    return json.dumps(
        {
            "headlines": [f"Headline {i}" for i in range(1, headlines + 1)],
            "descriptions": [f"Description {i}" for i in range(1, descriptions + 1)],
        }
    )


class FakeGenerationProvider:
    """Generation provider double.

    Args:
        response: Text returned for every prompt.
        failing_urls: URLs whose prompt makes the call raise
            :class:`ProviderError`.
        garbled_urls: URLs whose prompt gets an unparseable response.
    """

    def __init__(
        self,
        response: Optional[str] = None,
        *,
        failing_urls: Iterable[str] = (),
        garbled_urls: Iterable[str] = (),
    ) -> None:
        self.response = response if response is not None else copy_response()
        self.failing_urls = set(failing_urls)
        self.garbled_urls = set(garbled_urls)
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if any(f"URL {url} " in prompt for url in self.failing_urls):
            raise ProviderError("fake: upstream exploded", provider="fake")
        if any(f"URL {url} " in prompt for url in self.garbled_urls):
            return "Sorry, I cannot help with that."
        return self.response


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, scrape_concurrency=2, allowed_domains=[])


@pytest.fixture
def content_provider() -> FakeContentProvider:
    return FakeContentProvider()


@pytest.fixture
def generation_provider() -> FakeGenerationProvider:
    return FakeGenerationProvider()


@pytest.fixture
def job_repo() -> InMemoryJobRepository:
    return InMemoryJobRepository()


@pytest.fixture
def account_repo() -> InMemoryAccountRepository:
    return InMemoryAccountRepository([Account(owner_id=OWNER_ID, tier=Tier.FREE, balance=10)])


@pytest.fixture
def pipeline(
    job_repo: InMemoryJobRepository,
    account_repo: InMemoryAccountRepository,
    content_provider: FakeContentProvider,
    generation_provider: FakeGenerationProvider,
    settings: Settings,
) -> PipelineService:
    return PipelineService(
        job_repo,
        account_repo,
        content_provider,
        generation_provider,
        settings=settings,
    )
