"""Unit tests for the chunked batch scraper.

Covers result ordering under uneven latency, the concurrency bound, the
progress callback contract, and isolation of failing fetches.
"""

from __future__ import annotations

import pytest

from conftest import FakeContentProvider
from rsa_writer.core.schemas import ScrapeResult
from rsa_writer.scraper.batch import BatchProgress, BatchScraper
from rsa_writer.scraper.config import REASON_PROVIDER, REASON_UNEXPECTED

URLS = [f"https://shop-{i}.com/" for i in range(1, 8)]


class TestConstruction:
    def test_concurrency_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            BatchScraper(FakeContentProvider(), concurrency=0)

    def test_concurrency_is_exposed(self) -> None:
        assert BatchScraper(FakeContentProvider(), concurrency=3).concurrency == 3


class TestScrape:
    async def test_results_follow_input_order(self) -> None:
        # Later URLs answer first; results must still be positional.
        latency = {url: 0.01 * (len(URLS) - i) for i, url in enumerate(URLS)}
        provider = FakeContentProvider(latency=latency)

        results = await BatchScraper(provider, concurrency=3).scrape(URLS)

        assert [result.url for result in results] == URLS
        assert all(result.success for result in results)

    async def test_never_exceeds_concurrency(self) -> None:
        provider = FakeContentProvider(latency={url: 0.01 for url in URLS})

        await BatchScraper(provider, concurrency=2).scrape(URLS)

        assert provider.high_water_mark == 2
        assert sorted(provider.calls) == sorted(URLS)

    async def test_empty_batch(self) -> None:
        calls: list[BatchProgress] = []
        results = await BatchScraper(FakeContentProvider()).scrape([], on_progress=calls.append)
        assert results == []
        assert calls == []

    async def test_failures_do_not_cancel_siblings(self) -> None:
        provider = FakeContentProvider(failing=[URLS[1]], raising=[URLS[2]])

        results = await BatchScraper(provider, concurrency=3).scrape(URLS[:4])

        assert [result.success for result in results] == [True, False, False, True]
        assert results[1].error == "HTTP 500"
        assert results[2].error == REASON_PROVIDER

    async def test_unexpected_exception_becomes_failed_result(self) -> None:
        class ExplodingProvider(FakeContentProvider):
            async def fetch_one(self, url: str) -> ScrapeResult:
                raise RuntimeError("boom")

        results = await BatchScraper(ExplodingProvider()).scrape(URLS[:2])

        assert [result.error for result in results] == [REASON_UNEXPECTED] * 2

    async def test_result_url_is_the_requested_url(self) -> None:
        class RedirectingProvider(FakeContentProvider):
            async def fetch_one(self, url: str) -> ScrapeResult:
                return ScrapeResult.ok(url + "landing", "body")

        results = await BatchScraper(RedirectingProvider()).scrape(URLS[:1])

        assert results[0].url == URLS[0]


class TestProgress:
    async def test_called_once_per_chunk(self) -> None:
        snapshots: list[BatchProgress] = []

        await BatchScraper(FakeContentProvider(), concurrency=3).scrape(
            URLS, on_progress=snapshots.append
        )

        assert [(s.completed, s.total) for s in snapshots] == [(3, 7), (6, 7), (7, 7)]
        assert [r.url for r in snapshots[-1].results] == URLS

    async def test_async_callback_is_awaited(self) -> None:
        seen: list[int] = []

        async def record(progress: BatchProgress) -> None:
            seen.append(progress.completed)

        await BatchScraper(FakeContentProvider(), concurrency=4).scrape(URLS, on_progress=record)

        assert seen == [4, 7]

    async def test_snapshots_are_copies(self) -> None:
        def tamper(progress: BatchProgress) -> None:
            progress.results.clear()

        results = await BatchScraper(FakeContentProvider(), concurrency=2).scrape(
            URLS[:4], on_progress=tamper
        )

        assert len(results) == 4

    async def test_callback_errors_are_swallowed(self) -> None:
        def broken(progress: BatchProgress) -> None:
            raise RuntimeError("progress store down")

        results = await BatchScraper(FakeContentProvider(), concurrency=2).scrape(
            URLS, on_progress=broken
        )

        assert len(results) == len(URLS)
