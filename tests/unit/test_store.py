"""Unit tests for the job and account repositories.

The same behavioural checks run against the in-memory repositories and the
SQLAlchemy repositories on an in-memory aiosqlite database.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from rsa_writer.config.tiers import Tier
from rsa_writer.core.database import build_engine, build_session_factory, create_tables
from rsa_writer.core.exceptions import AccountNotFoundError, JobNotFoundError, PersistenceError
from rsa_writer.core.job_state import finish_scraping, start_scraping
from rsa_writer.core.schemas import (
    Account,
    GeneratedCopy,
    Job,
    JobProgress,
    JobStatus,
    ScrapeResult,
)
from rsa_writer.core.store import (
    AccountRepository,
    InMemoryAccountRepository,
    InMemoryJobRepository,
    JobRepository,
    SqlAccountRepository,
    SqlJobRepository,
)

OWNER = "user_store"
URLS = ("https://a.com/", "https://b.com/")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(params=["memory", "sql"])
async def repos(request: pytest.FixtureRequest) -> AsyncIterator[tuple[JobRepository, AccountRepository]]:
    if request.param == "memory":
        yield InMemoryJobRepository(), InMemoryAccountRepository()
        return

    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    factory = build_session_factory(engine)
    try:
        yield SqlJobRepository(factory), SqlAccountRepository(factory)
    finally:
        await engine.dispose()


async def _stored_job(jobs: JobRepository, accounts: AccountRepository) -> Job:
    await accounts.save_account(Account(owner_id=OWNER))
    job = Job(owner_id=OWNER, label="Spring sale", urls=URLS)
    assert await jobs.save_job(job)
    return job


def _with_results(job: Job) -> Job:
    return job.model_copy(
        update={
            "scrape_results": {
                URLS[0]: ScrapeResult.ok(URLS[0], "# A", {"title": "A"}),
                URLS[1]: ScrapeResult.failed(URLS[1], "HTTP 404"),
            }
        }
    )


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class TestAccounts:
    async def test_missing_account_is_none(self, repos) -> None:
        _, accounts = repos
        assert await accounts.get_account("nobody") is None

    async def test_round_trip_and_update(self, repos) -> None:
        _, accounts = repos
        await accounts.save_account(Account(owner_id=OWNER, tier=Tier.STARTER, balance=7))

        loaded = await accounts.get_account(OWNER)
        assert loaded is not None
        assert loaded.tier is Tier.STARTER
        assert loaded.balance == 7

        await accounts.save_account(loaded.model_copy(update={"balance": 3}))
        reloaded = await accounts.get_account(OWNER)
        assert reloaded is not None and reloaded.balance == 3

    async def test_debit_returns_new_balance(self, repos) -> None:
        _, accounts = repos
        await accounts.save_account(Account(owner_id=OWNER, tier=Tier.STARTER, balance=7))

        assert await accounts.debit(OWNER, 3) == 4
        assert await accounts.debit(OWNER, 4) == 0

        loaded = await accounts.get_account(OWNER)
        assert loaded is not None
        assert loaded.balance == 0
        assert loaded.tier is Tier.STARTER

    async def test_debit_beyond_balance_is_clamped_at_zero(self, repos) -> None:
        _, accounts = repos
        await accounts.save_account(Account(owner_id=OWNER, tier=Tier.STARTER, balance=2))

        assert await accounts.debit(OWNER, 5) == 0
        loaded = await accounts.get_account(OWNER)
        assert loaded is not None and loaded.balance == 0

    async def test_debit_unknown_account(self, repos) -> None:
        _, accounts = repos
        with pytest.raises(AccountNotFoundError):
            await accounts.debit("nobody", 1)

    async def test_concurrent_debits_are_all_applied(self, repos) -> None:
        _, accounts = repos
        await accounts.save_account(Account(owner_id=OWNER, tier=Tier.STARTER, balance=20))

        await asyncio.gather(*(accounts.debit(OWNER, 2) for _ in range(5)))

        loaded = await accounts.get_account(OWNER)
        assert loaded is not None and loaded.balance == 10


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class TestJobs:
    async def test_round_trip_preserves_fields(self, repos) -> None:
        jobs, accounts = repos
        job = await _stored_job(jobs, accounts)
        scraped = finish_scraping(_with_results(start_scraping(job)))
        assert await jobs.save_job(scraped)

        loaded = await jobs.get_job(job.id)
        assert loaded is not None
        assert loaded.urls == URLS
        assert loaded.label == "Spring sale"
        assert loaded.status is JobStatus.COMPLETED
        assert loaded.phase_seq == 2
        assert loaded.scrape_results[URLS[0]].metadata == {"title": "A"}
        assert loaded.scrape_results[URLS[1]].error == "HTTP 404"
        assert loaded.successful_urls() == [URLS[0]]

    async def test_unknown_job_is_none(self, repos) -> None:
        jobs, _ = repos
        assert await jobs.get_job(Job(owner_id=OWNER, urls=URLS).id) is None

    async def test_stale_write_is_refused(self, repos) -> None:
        jobs, accounts = repos
        job = await _stored_job(jobs, accounts)
        scraping = start_scraping(job)
        completed = finish_scraping(_with_results(scraping))
        assert await jobs.save_job(completed)

        assert await jobs.save_job(scraping) is False
        loaded = await jobs.get_job(job.id)
        assert loaded is not None and loaded.status is JobStatus.COMPLETED

    async def test_expected_phase_seq_acts_as_compare_and_set(self, repos) -> None:
        jobs, accounts = repos
        job = await _stored_job(jobs, accounts)
        scraping = start_scraping(job)

        assert await jobs.save_job(scraping, expected_phase_seq=0) is True
        # A second phase start computed from the same pending job loses the race.
        assert await jobs.save_job(start_scraping(job), expected_phase_seq=0) is False


class TestProgress:
    async def test_progress_lands_while_scraping(self, repos) -> None:
        jobs, accounts = repos
        job = start_scraping(await _stored_job(jobs, accounts))
        await jobs.save_job(job)

        assert await jobs.write_progress(job.id, job.phase_seq, JobProgress(completed=1, total=2))
        loaded = await jobs.get_job(job.id)
        assert loaded is not None
        assert loaded.progress == JobProgress(completed=1, total=2)

    async def test_late_progress_after_completion_is_ignored(self, repos) -> None:
        jobs, accounts = repos
        scraping = start_scraping(await _stored_job(jobs, accounts))
        await jobs.save_job(scraping)
        completed = finish_scraping(_with_results(scraping))
        await jobs.save_job(completed)

        accepted = await jobs.write_progress(
            scraping.id, scraping.phase_seq, JobProgress(completed=2, total=2)
        )

        assert accepted is False
        loaded = await jobs.get_job(scraping.id)
        assert loaded is not None
        assert loaded.status is JobStatus.COMPLETED
        assert loaded.progress is None

    async def test_backwards_progress_is_ignored(self, repos) -> None:
        jobs, accounts = repos
        job = start_scraping(await _stored_job(jobs, accounts))
        await jobs.save_job(job)
        await jobs.write_progress(job.id, job.phase_seq, JobProgress(completed=2, total=2))

        assert not await jobs.write_progress(job.id, job.phase_seq, JobProgress(completed=1, total=2))

    async def test_progress_for_unknown_job_raises(self, repos) -> None:
        jobs, _ = repos
        with pytest.raises(JobNotFoundError):
            await jobs.write_progress(
                Job(owner_id=OWNER, urls=URLS).id, 1, JobProgress(completed=0, total=1)
            )


class TestMergeGeneratedCopy:
    async def test_merge_keeps_other_urls(self, repos) -> None:
        jobs, accounts = repos
        job = await _stored_job(jobs, accounts)
        both_ok = job.model_copy(
            update={
                "scrape_results": {url: ScrapeResult.ok(url, "x") for url in URLS},
            }
        )
        await jobs.save_job(finish_scraping(start_scraping(both_ok)))

        first = GeneratedCopy(headlines=["First"], descriptions=["one"])
        second = GeneratedCopy(headlines=["Second"], descriptions=["two"])
        await jobs.merge_generated_copy(job.id, URLS[0], first)
        await jobs.merge_generated_copy(job.id, URLS[1], second)
        edited = GeneratedCopy(headlines=["Edited"], descriptions=["one"])
        await jobs.merge_generated_copy(job.id, URLS[0], edited)

        loaded = await jobs.get_job(job.id)
        assert loaded is not None
        assert loaded.generated_copy == {URLS[0]: edited, URLS[1]: second}

    async def test_merge_requires_successful_scrape(self, repos) -> None:
        jobs, accounts = repos
        job = await _stored_job(jobs, accounts)
        await jobs.save_job(finish_scraping(_with_results(start_scraping(job))))

        with pytest.raises(PersistenceError):
            await jobs.merge_generated_copy(job.id, URLS[1], GeneratedCopy())

    async def test_merge_into_unknown_job_raises(self, repos) -> None:
        jobs, _ = repos
        with pytest.raises(JobNotFoundError):
            await jobs.merge_generated_copy(
                Job(owner_id=OWNER, urls=URLS).id, URLS[0], GeneratedCopy()
            )


class TestInMemoryIsolation:
    async def test_stored_job_is_not_aliased(self) -> None:
        jobs = InMemoryJobRepository()
        job = Job(owner_id=OWNER, urls=URLS)
        await jobs.save_job(job)

        loaded = await jobs.get_job(job.id)
        assert loaded is not None
        loaded.generation_errors["x"] = "mutated"

        again = await jobs.get_job(job.id)
        assert again is not None and again.generation_errors == {}


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------


def _unreachable_database():
    raise OperationalError("UPDATE profiles SET credit_units=?", {}, Exception("disk I/O error"))


class TestStorageErrors:
    async def test_debit_error_keeps_driver_text_out_of_the_message(self) -> None:
        accounts = SqlAccountRepository(_unreachable_database)

        with pytest.raises(PersistenceError) as exc_info:
            await accounts.debit(OWNER, 1)

        assert str(exc_info.value) == f"Failed to debit account {OWNER}"
        assert isinstance(exc_info.value.__cause__, OperationalError)

    async def test_job_save_error_keeps_driver_text_out_of_the_message(self) -> None:
        job = Job(owner_id=OWNER, urls=URLS)

        with pytest.raises(PersistenceError) as exc_info:
            await SqlJobRepository(_unreachable_database).save_job(job)

        assert "disk I/O error" not in str(exc_info.value)
