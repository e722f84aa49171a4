"""Caller-facing pipeline operations.

:class:`PipelineService` composes validation, the credit ledger, the job
state machine and both orchestrators into the operations a caller (web
handler, CLI, worker) invokes:

- ``submit_batch``           validate, admit, create a job and scrape it
- ``generate_all_copy``      generate copy for every scraped URL of a job
- ``generate_single_copy``   (re)generate copy for one URL
- ``update_generated_copy``  replace one URL's copy with an edited version
- ``get_job``                poll a job's status and progress
- ``export_copy_csv`` / ``export_copy_xlsx``  download generated copy

Every operation returns an :class:`~rsa_writer.core.schemas.ActionResult`
and never raises.  Domain errors (:class:`RsaWriterError`) become failure
results carrying their message; anything else is logged with a traceback
and reported with a generic message.

Credits are settled once per phase, after the phase's outcome is known, and
only for the URLs that succeeded.  The debit is an atomic repository update;
if it fails, the failure is logged and the phase result is still reported.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rsa_writer.config.settings import Settings, get_settings
from rsa_writer.config.tiers import Phase
from rsa_writer.core.credits import CreditLedger
from rsa_writer.core.exceptions import (
    AccountNotFoundError,
    JobNotFoundError,
    PersistenceError,
    PhaseExhaustionError,
    RsaWriterError,
    UrlValidationError,
)
from rsa_writer.core.job_state import (
    finish_generating,
    finish_scraping,
    start_generating,
    start_scraping,
    transition,
    with_generated_copy,
    with_generation_error,
)
from rsa_writer.core.logging_config import job_log_context
from rsa_writer.core.schemas import (
    Account,
    ActionResult,
    GenerateAllData,
    GeneratedCopy,
    GenerateSingleData,
    Job,
    JobProgress,
    JobStatus,
    SubmitBatchData,
)
from rsa_writer.core.store import (
    AccountRepository,
    JobRepository,
    SqlAccountRepository,
    SqlJobRepository,
)
from rsa_writer.core.url_validation import process_url_input, validate_url
from rsa_writer.export import CopyExporter
from rsa_writer.generation.openai_client import OpenAIClient
from rsa_writer.generation.orchestrator import CopyGenerator
from rsa_writer.generation.provider import GenerationProvider
from rsa_writer.scraper.batch import BatchProgress, BatchScraper
from rsa_writer.scraper.firecrawl import FirecrawlClient
from rsa_writer.scraper.provider import ContentProvider

logger = logging.getLogger(__name__)

_UNEXPECTED_MESSAGES: dict[str, str] = {
    "submit_batch": "Failed to scrape URLs",
    "generate_all_copy": "Failed to generate ad copy",
    "generate_single_copy": "Failed to generate ad copy",
    "update_generated_copy": "Failed to update generated copy",
    "get_job": "Failed to get project",
    "export_copy": "Failed to export generated copy",
}


def _as_job_id(job_id: uuid.UUID | str) -> uuid.UUID:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(str(job_id))
    except ValueError as exc:
        raise JobNotFoundError(str(job_id)) from exc


class PipelineService:
    """Runs the credit-metered scrape and generation phases for jobs.

    The service holds no job or account state between calls; everything is
    read from and written back to the repositories it is given.

    Args:
        jobs: Job persistence collaborator.
        accounts: Account persistence collaborator.
        content_provider: Content-retrieval provider for the scrape phase.
        generation_provider: Text-generation provider for the generation phase.
        settings: Pipeline settings; defaults to :func:`get_settings`.
        ledger: Credit ledger; defaults to a new :class:`CreditLedger`.
    """

    def __init__(
        self,
        jobs: JobRepository,
        accounts: AccountRepository,
        content_provider: ContentProvider,
        generation_provider: GenerationProvider,
        *,
        settings: Optional[Settings] = None,
        ledger: Optional[CreditLedger] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._jobs = jobs
        self._accounts = accounts
        self._ledger = ledger or CreditLedger()
        self._scraper = BatchScraper(content_provider, concurrency=self._settings.scrape_concurrency)
        self._generator = CopyGenerator(
            generation_provider,
            max_headlines=self._settings.max_headlines,
            max_descriptions=self._settings.max_descriptions,
            headline_chars=self._settings.max_headline_chars,
            description_chars=self._settings.max_description_chars,
        )
        self._exporter = CopyExporter()
        self._owned_clients: list[FirecrawlClient | OpenAIClient] = []

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ) -> PipelineService:
        """Build a service backed by SQL repositories and the HTTP providers."""
        settings = settings or get_settings()
        content_provider = FirecrawlClient.from_settings(settings)
        generation_provider = OpenAIClient.from_settings(settings)
        service = cls(
            SqlJobRepository(session_factory),
            SqlAccountRepository(session_factory),
            content_provider,
            generation_provider,
            settings=settings,
        )
        service._owned_clients = [content_provider, generation_provider]
        return service

    async def aclose(self) -> None:
        """Close the HTTP clients this service created in :meth:`from_settings`.

        Providers passed to the constructor belong to the caller and are
        left open.
        """
        clients, self._owned_clients = self._owned_clients, []
        for client in clients:
            await client.aclose()

    async def __aenter__(self) -> PipelineService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Scrape phase
    # ------------------------------------------------------------------

    async def submit_batch(
        self,
        owner_id: str,
        raw_url_text: str,
        job_label: str = "",
        allowed_domains: Optional[Sequence[str]] = None,
    ) -> ActionResult[SubmitBatchData]:
        """Validate *raw_url_text*, create a job and scrape every accepted URL.

        Args:
            owner_id: Owner of the job and of the paying account.
            raw_url_text: One URL per line.
            job_label: Project name.
            allowed_domains: Domain allow-list; defaults to
                ``Settings.allowed_domains``.

        Returns:
            Success with :class:`SubmitBatchData` when at least one URL was
            scraped, otherwise a failure with a human-readable message.
        """
        with job_log_context(owner_id=owner_id):
            try:
                return await self._submit_batch(owner_id, raw_url_text, job_label, allowed_domains)
            except Exception as exc:  # noqa: BLE001
                return self._failure("submit_batch", exc)

    async def _submit_batch(
        self,
        owner_id: str,
        raw_url_text: str,
        job_label: str,
        allowed_domains: Optional[Sequence[str]],
    ) -> ActionResult[SubmitBatchData]:
        domains = self._settings.allowed_domains if allowed_domains is None else allowed_domains
        batch = process_url_input(raw_url_text, domains)
        if not batch.verdicts:
            raise UrlValidationError("No URLs provided")
        if not batch.accepted:
            raise UrlValidationError(
                "All URLs are invalid. Please provide valid URLs.",
                rejected=batch.rejected_lines,
            )

        account = await self._load_account(owner_id)
        unit_cost = self._ledger.unit_cost_for(account, Phase.SCRAPE)
        decision = self._ledger.check_admission(account, len(batch.accepted), unit_cost)
        if not decision.allowed:
            return ActionResult.fail(decision.reason or "Admission rejected")

        job = Job(owner_id=owner_id, label=job_label, urls=batch.accepted)
        await self._jobs.save_job(job)

        with job_log_context(job_id=str(job.id)):
            job = start_scraping(job)
            await self._save_phase_start(job)
            logger.info(
                "Scrape phase started",
                extra={"urls": len(job.urls), "rejected": len(batch.rejected)},
            )

            try:
                job = await self._run_scrape(job)
            except Exception:
                await self._abort_phase(job, "Unexpected error while scraping")
                raise

            if job.status is JobStatus.FAILED:
                raise PhaseExhaustionError(
                    "Failed to scrape any URLs successfully. Please try again with different URLs.",
                    phase=Phase.SCRAPE.value,
                )

            scraped = job.successful_urls()
            failed = job.failed_urls()
            await self._settle(owner_id, len(scraped), Phase.SCRAPE)

            rejected = batch.rejected_lines + failed
            if rejected:
                message = (
                    f"URLs scraped successfully. {len(scraped)}/"
                    f"{len(batch.accepted) + len(batch.rejected)} "
                    "URLs were scraped successfully."
                )
            else:
                message = "All URLs were scraped successfully."
            return ActionResult.ok(
                message,
                SubmitBatchData(
                    job_id=job.id,
                    rejected_urls=rejected,
                    failed_urls=failed,
                    scraped_count=len(scraped),
                ),
            )

    async def _run_scrape(self, job: Job) -> Job:
        scrape_seq = job.phase_seq

        async def report_progress(progress: BatchProgress) -> None:
            try:
                await self._jobs.write_progress(
                    job.id,
                    scrape_seq,
                    JobProgress(completed=progress.completed, total=progress.total),
                )
            except PersistenceError as exc:
                logger.warning("Could not record scrape progress: %s", exc)

        results = await self._scraper.scrape(job.urls, on_progress=report_progress)
        job = job.model_copy(update={"scrape_results": {result.url: result for result in results}})
        job = finish_scraping(job)
        await self._jobs.save_job(job)
        return job

    # ------------------------------------------------------------------
    # Generation phase
    # ------------------------------------------------------------------

    async def generate_all_copy(self, job_id: uuid.UUID | str) -> ActionResult[GenerateAllData]:
        """Generate copy for every successfully scraped URL of a completed job.

        Per-URL failures never fail the operation; they are listed in
        :attr:`GenerateAllData.failed_urls` and recorded on the job.
        """
        with job_log_context(job_id=str(job_id)):
            try:
                return await self._generate_all_copy(_as_job_id(job_id))
            except Exception as exc:  # noqa: BLE001
                return self._failure("generate_all_copy", exc)

    async def _generate_all_copy(self, job_id: uuid.UUID) -> ActionResult[GenerateAllData]:
        job = await self._load_job(job_id)
        if job.status is not JobStatus.COMPLETED:
            return ActionResult.fail(self._not_ready_message(job))

        account = await self._load_account(job.owner_id)
        eligible = job.successful_urls()
        unit_cost = self._ledger.unit_cost_for(account, Phase.GENERATE)
        decision = self._ledger.check_admission(account, len(eligible), unit_cost)
        if not decision.allowed:
            return ActionResult.fail(decision.reason or "Admission rejected")

        job = start_generating(job)
        await self._save_phase_start(job)
        generating = job

        if not eligible:
            await self._save_phase_end(generating, finish_generating(job, had_eligible_input=False))
            raise PhaseExhaustionError(
                "No scraped data available for generation", phase=Phase.GENERATE.value
            )

        async def store_copy(url: str, copy: GeneratedCopy) -> None:
            await self._jobs.merge_generated_copy(generating.id, url, copy)

        try:
            report = await self._generator.generate_all(job.urls, job.scrape_results, on_copy=store_copy)
        except Exception:
            await self._abort_phase(generating, "Unexpected error while generating copy")
            raise

        for url, copy in report.copies.items():
            job = with_generated_copy(job, url, copy)
        for url, reason in report.failures.items():
            job = with_generation_error(job, url, reason)
        job = finish_generating(job, had_eligible_input=True)
        await self._save_phase_end(generating, job)

        await self._settle(job.owner_id, report.generated_count, Phase.GENERATE)

        failed = list(report.failures)
        if report.generated_count == 0:
            logger.warning("No copy generated", extra={"failed": len(failed)})
            return ActionResult.fail("Failed to generate copy for any URL. Please try again.")
        return ActionResult.ok(
            f"Generated copy for {report.generated_count} of {report.eligible_count} URLs",
            GenerateAllData(
                job_id=job.id,
                generated_count=report.generated_count,
                failed_urls=failed,
            ),
        )

    async def generate_single_copy(
        self, job_id: uuid.UUID | str, url: str
    ) -> ActionResult[GenerateSingleData]:
        """Generate (or regenerate) copy for one scraped URL of a completed job."""
        with job_log_context(job_id=str(job_id)):
            try:
                return await self._generate_single_copy(_as_job_id(job_id), url)
            except Exception as exc:  # noqa: BLE001
                return self._failure("generate_single_copy", exc)

    async def _generate_single_copy(
        self, job_id: uuid.UUID, url: str
    ) -> ActionResult[GenerateSingleData]:
        job = await self._load_job(job_id)
        if job.status is not JobStatus.COMPLETED:
            return ActionResult.fail(self._not_ready_message(job))

        url = self._resolve_job_url(job, url)
        result = job.scrape_results[url]

        account = await self._load_account(job.owner_id)
        unit_cost = self._ledger.unit_cost_for(account, Phase.GENERATE)
        decision = self._ledger.check_admission(account, 1, unit_cost)
        if not decision.allowed:
            return ActionResult.fail(decision.reason or "Admission rejected")

        job = start_generating(job)
        await self._save_phase_start(job)
        generating = job

        try:
            outcome = await self._generator.generate_one(url, result)
        except Exception:
            await self._abort_phase(generating, "Unexpected error while generating copy")
            raise

        if outcome.copy is not None:
            job = with_generated_copy(job, url, outcome.copy)
        else:
            job = with_generation_error(job, url, outcome.error or "Generation failed")
        job = finish_generating(job)
        await self._save_phase_end(generating, job)

        if outcome.copy is None:
            return ActionResult.fail(f"Failed to generate copy for {url}: {outcome.error}")

        await self._settle(job.owner_id, 1, Phase.GENERATE)
        return ActionResult.ok(
            "Copy generated successfully",
            GenerateSingleData(job_id=job.id, url=url, generated_copy=outcome.copy),
        )

    # ------------------------------------------------------------------
    # Editing, polling and export
    # ------------------------------------------------------------------

    async def update_generated_copy(
        self,
        job_id: uuid.UUID | str,
        url: str,
        copy: GeneratedCopy | dict[str, Any],
    ) -> ActionResult[GenerateSingleData]:
        """Replace one URL's copy in place, leaving every other URL untouched."""
        with job_log_context(job_id=str(job_id)):
            try:
                return await self._update_generated_copy(_as_job_id(job_id), url, copy)
            except Exception as exc:  # noqa: BLE001
                return self._failure("update_generated_copy", exc)

    async def _update_generated_copy(
        self,
        job_id: uuid.UUID,
        url: str,
        copy: GeneratedCopy | dict[str, Any],
    ) -> ActionResult[GenerateSingleData]:
        invalid_message = (
            f"Invalid copy: at most {self._settings.max_headlines} headlines and "
            f"{self._settings.max_descriptions} descriptions of text are allowed"
        )
        try:
            edited = GeneratedCopy.model_validate(
                copy.model_dump() if isinstance(copy, GeneratedCopy) else copy
            )
        except ValidationError:
            return ActionResult.fail(invalid_message)
        if (
            len(edited.headlines) > self._settings.max_headlines
            or len(edited.descriptions) > self._settings.max_descriptions
        ):
            return ActionResult.fail(invalid_message)

        job = await self._load_job(job_id)
        if job.status in (JobStatus.SCRAPING, JobStatus.GENERATING):
            return ActionResult.fail(self._not_ready_message(job))

        url = self._resolve_job_url(job, url)
        await self._jobs.merge_generated_copy(job.id, url, edited)
        logger.info("Generated copy edited", extra={"url": url})
        return ActionResult.ok(
            "Copy updated successfully",
            GenerateSingleData(job_id=job.id, url=url, generated_copy=edited),
        )

    async def get_job(self, job_id: uuid.UUID | str) -> ActionResult[Job]:
        """Return the current state of a job (status, progress, results)."""
        with job_log_context(job_id=str(job_id)):
            try:
                job = await self._load_job(_as_job_id(job_id))
            except Exception as exc:  # noqa: BLE001
                return self._failure("get_job", exc)
            return ActionResult.ok("Project retrieved successfully", job)

    async def export_copy_csv(self, job_id: uuid.UUID | str) -> ActionResult[bytes]:
        """Export a job's generated copy as a responsive search ad CSV."""
        return await self._export(job_id, "csv")

    async def export_copy_xlsx(self, job_id: uuid.UUID | str) -> ActionResult[bytes]:
        """Export a job's generated copy as an XLSX workbook."""
        return await self._export(job_id, "xlsx")

    async def _export(self, job_id: uuid.UUID | str, fmt: str) -> ActionResult[bytes]:
        with job_log_context(job_id=str(job_id)):
            try:
                job = await self._load_job(_as_job_id(job_id))
                if not job.generated_copy:
                    return ActionResult.fail("No generated copy to export")
                if fmt == "xlsx":
                    data = await self._exporter.export_xlsx(job)
                else:
                    data = await self._exporter.export_csv(job)
            except Exception as exc:  # noqa: BLE001
                return self._failure("export_copy", exc)
            return ActionResult.ok("Export created successfully", data)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_job(self, job_id: uuid.UUID) -> Job:
        job = await self._jobs.get_job(job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    async def _load_account(self, owner_id: str) -> Account:
        account = await self._accounts.get_account(owner_id)
        if account is None:
            raise AccountNotFoundError(owner_id)
        return account

    async def _save_phase_start(self, job: Job) -> None:
        """Persist a phase-start transition, refusing if another phase won the race."""
        if not await self._jobs.save_job(job, expected_phase_seq=job.phase_seq - 1):
            raise PersistenceError("Project is already being processed")

    async def _save_phase_end(self, started: Job, finished: Job) -> None:
        """Persist a generation phase's final state.

        If the write raises, the job is moved from *started* to ``failed``
        so it is never left ``generating``.
        """
        try:
            await self._jobs.save_job(finished)
        except Exception:
            await self._abort_phase(started, "Unexpected error while saving generated copy")
            raise

    async def _abort_phase(self, job: Job, message: str) -> None:
        try:
            await self._jobs.save_job(transition(job, JobStatus.FAILED, error_message=message))
        except Exception as exc:  # noqa: BLE001
            logger.error("Could not mark job as failed: %s", exc)

    async def _settle(self, owner_id: str, success_count: int, phase: Phase) -> None:
        """Debit a finished phase's successes.

        The phase's work is already persisted when this runs, so a settlement
        failure is logged and never turned into a failed operation.
        """
        try:
            account = await self._load_account(owner_id)
            unit_cost = self._ledger.unit_cost_for(account, phase)
            units = self._ledger.settlement_debit(account, success_count, unit_cost)
            if units == 0:
                return
            balance = await self._accounts.debit(owner_id, units)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Credit settlement failed",
                extra={"phase": phase.value, "success_count": success_count},
            )
            return
        logger.info(
            "Credits settled",
            extra={
                "phase": phase.value,
                "tier": account.tier.value,
                "success_count": success_count,
                "debited": units,
                "balance": balance,
            },
        )

    def _resolve_job_url(self, job: Job, url: str) -> str:
        """Map *url* to the job's normalized form and require scraped data for it."""
        if url not in job.urls:
            verdict = validate_url(url)
            if verdict.normalized in job.urls:
                url = verdict.normalized
            else:
                raise UrlValidationError("URL is not part of this project", rejected=[url])
        result = job.scrape_results.get(url)
        if result is None or not result.success:
            raise PhaseExhaustionError(
                "No scraped data available for this URL", phase=Phase.GENERATE.value
            )
        return url

    @staticmethod
    def _not_ready_message(job: Job) -> str:
        if job.status is JobStatus.FAILED:
            return "Project has failed. Please submit the URLs again."
        if job.status in (JobStatus.SCRAPING, JobStatus.GENERATING):
            return "Project is already being processed"
        return "Project is not ready for copy generation"

    def _failure(self, operation: str, exc: Exception) -> ActionResult[Any]:
        if isinstance(exc, PersistenceError) and exc.__cause__ is not None:
            # Driver details stay in the log via the exception chain.
            logger.error("%s storage failure: %s", operation, exc, exc_info=exc)
            return ActionResult.fail(str(exc))
        if isinstance(exc, RsaWriterError):
            logger.info("%s rejected: %s", operation, exc, extra={"error_type": type(exc).__name__})
            return ActionResult.fail(str(exc))
        logger.exception("%s failed unexpectedly", operation)
        return ActionResult.fail(_UNEXPECTED_MESSAGES.get(operation, "Operation failed"))
