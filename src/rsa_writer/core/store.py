"""Persistence collaborator for jobs and accounts.

Two protocols describe what the pipeline needs from storage:

``JobRepository``
    Read and write jobs by id.  Writes are *monotonic*: a write carrying an
    older ``phase_seq`` than the stored job is ignored, and progress writes
    only land while the stored job is still scraping in the same phase.

``AccountRepository``
    Read and write credit accounts by owner, and debit balances atomically.

Two implementations are provided: in-memory dictionaries (single process,
used by tests and scripts) and SQLAlchemy async sessions over the
``projects`` / ``profiles`` tables.  Storage failures surface as
:class:`~rsa_writer.core.exceptions.PersistenceError`.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Optional, Protocol, runtime_checkable

from sqlalchemy import case, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rsa_writer.core.exceptions import AccountNotFoundError, JobNotFoundError, PersistenceError
from rsa_writer.core.job_state import accepts_progress, is_stale_write
from rsa_writer.core.models import Profile, Project
from rsa_writer.core.schemas import (
    Account,
    GeneratedCopy,
    Job,
    JobProgress,
    JobStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class JobRepository(Protocol):
    async def get_job(self, job_id: uuid.UUID) -> Optional[Job]: ...

    async def save_job(self, job: Job, *, expected_phase_seq: Optional[int] = None) -> bool:
        """Insert or replace *job*; return ``False`` if refused.

        A write is refused when it is stale, or when *expected_phase_seq* is
        given and the stored job has moved past it (compare-and-set for
        phase starts).
        """
        ...

    async def write_progress(
        self, job_id: uuid.UUID, phase_seq: int, progress: JobProgress
    ) -> bool:
        """Update scrape progress only; return ``False`` if refused."""
        ...

    async def merge_generated_copy(
        self, job_id: uuid.UUID, url: str, copy: GeneratedCopy
    ) -> None:
        """Set one URL's copy without touching any other URL's entry."""
        ...


@runtime_checkable
class AccountRepository(Protocol):
    async def get_account(self, owner_id: str) -> Optional[Account]: ...

    async def save_account(self, account: Account) -> None: ...

    async def debit(self, owner_id: str, units: int) -> int:
        """Atomically subtract *units* from the balance and return the new balance.

        The read and the write happen as one step, so two settlements on the
        same account never lose each other's debit.  A debit larger than the
        balance is clamped so the balance stops at zero.

        Raises:
            AccountNotFoundError: If no account exists for *owner_id*.
        """
        ...


def _refuses_write(
    incoming_phase_seq: int, stored_phase_seq: int, expected_phase_seq: Optional[int]
) -> bool:
    if is_stale_write(incoming_phase_seq, stored_phase_seq):
        return True
    return expected_phase_seq is not None and stored_phase_seq != expected_phase_seq


def _log_clamped_debit(owner_id: str, units: int, available: Optional[int] = None) -> None:
    extra: dict[str, Any] = {"owner_id": owner_id, "debit": units}
    if available is not None:
        extra["available"] = available
    logger.warning("Settlement clamped to available balance", extra=extra)


def _can_merge_copy(job: Job, url: str) -> bool:
    result = job.scrape_results.get(url)
    return result is not None and result.success


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryJobRepository:
    """Dictionary-backed :class:`JobRepository`.

    Stored jobs are deep copies, so callers mutating their own objects can
    never change stored state behind the repository's back.
    """

    def __init__(self) -> None:
        self._jobs: dict[uuid.UUID, Job] = {}
        self._lock = asyncio.Lock()

    async def get_job(self, job_id: uuid.UUID) -> Optional[Job]:
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job is not None else None

    async def save_job(self, job: Job, *, expected_phase_seq: Optional[int] = None) -> bool:
        async with self._lock:
            stored = self._jobs.get(job.id)
            if stored is not None and _refuses_write(
                job.phase_seq, stored.phase_seq, expected_phase_seq
            ):
                logger.info(
                    "Refused job write",
                    extra={
                        "job_id": str(job.id),
                        "incoming_phase_seq": job.phase_seq,
                        "stored_phase_seq": stored.phase_seq,
                    },
                )
                return False
            self._jobs[job.id] = job.model_copy(deep=True)
            return True

    async def write_progress(
        self, job_id: uuid.UUID, phase_seq: int, progress: JobProgress
    ) -> bool:
        async with self._lock:
            stored = self._jobs.get(job_id)
            if stored is None:
                raise JobNotFoundError(str(job_id))
            if not accepts_progress(
                stored.status, stored.phase_seq, stored.progress, phase_seq, progress
            ):
                return False
            self._jobs[job_id] = stored.model_copy(
                update={"progress": progress, "updated_at": utcnow()}
            )
            return True

    async def merge_generated_copy(
        self, job_id: uuid.UUID, url: str, copy: GeneratedCopy
    ) -> None:
        async with self._lock:
            stored = self._jobs.get(job_id)
            if stored is None:
                raise JobNotFoundError(str(job_id))
            if not _can_merge_copy(stored, url):
                raise PersistenceError(f"Cannot store copy for {url}: no successful scrape result")
            generated = dict(stored.generated_copy)
            generated[url] = copy.model_copy(deep=True)
            self._jobs[job_id] = stored.model_copy(
                update={"generated_copy": generated, "updated_at": utcnow()}
            )


class InMemoryAccountRepository:
    """Dictionary-backed :class:`AccountRepository`."""

    def __init__(self, accounts: Optional[list[Account]] = None) -> None:
        self._accounts: dict[str, Account] = {a.owner_id: a for a in accounts or []}
        self._lock = asyncio.Lock()

    async def get_account(self, owner_id: str) -> Optional[Account]:
        async with self._lock:
            account = self._accounts.get(owner_id)
            return account.model_copy() if account is not None else None

    async def save_account(self, account: Account) -> None:
        async with self._lock:
            self._accounts[account.owner_id] = account.model_copy()

    async def debit(self, owner_id: str, units: int) -> int:
        if units < 0:
            raise ValueError("units must be non-negative")
        async with self._lock:
            stored = self._accounts.get(owner_id)
            if stored is None:
                raise AccountNotFoundError(owner_id)
            if units > stored.balance:
                _log_clamped_debit(owner_id, units, stored.balance)
            balance = max(stored.balance - units, 0)
            self._accounts[owner_id] = stored.model_copy(
                update={"balance": balance, "updated_at": utcnow()}
            )
            return balance


# ---------------------------------------------------------------------------
# Row <-> domain conversion
# ---------------------------------------------------------------------------


def _job_to_columns(job: Job) -> dict[str, Any]:
    return {
        "owner_id": job.owner_id,
        "label": job.label,
        "urls": list(job.urls),
        "scrape_results": {
            url: result.model_dump(mode="json") for url, result in job.scrape_results.items()
        },
        "generated_copy": {
            url: copy.model_dump(mode="json") for url, copy in job.generated_copy.items()
        },
        "generation_errors": dict(job.generation_errors),
        "status": job.status.value,
        "progress_completed": job.progress.completed if job.progress else None,
        "progress_total": job.progress.total if job.progress else None,
        "phase_seq": job.phase_seq,
        "error_message": job.error_message,
        "created_at": job.created_at,
        "updated_at": job.updated_at,
    }


def _row_to_job(row: Project) -> Job:
    progress = None
    if row.progress_completed is not None and row.progress_total is not None:
        progress = JobProgress(completed=row.progress_completed, total=row.progress_total)
    return Job.model_validate(
        {
            "id": row.id,
            "owner_id": row.owner_id,
            "label": row.label,
            "urls": tuple(row.urls or ()),
            "scrape_results": row.scrape_results or {},
            "generated_copy": row.generated_copy or {},
            "generation_errors": row.generation_errors or {},
            "status": JobStatus(row.status),
            "progress": progress,
            "phase_seq": row.phase_seq,
            "error_message": row.error_message,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }
    )


def _row_to_account(row: Profile) -> Account:
    return Account(
        owner_id=row.owner_id,
        tier=row.membership,
        balance=row.credit_units,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# ---------------------------------------------------------------------------
# SQLAlchemy implementations
# ---------------------------------------------------------------------------


class SqlJobRepository:
    """:class:`JobRepository` over the ``projects`` table.

    Args:
        session_factory: An ``async_sessionmaker`` from
            :func:`rsa_writer.core.database.build_session_factory`.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _load_for_update(self, session: AsyncSession, job_id: uuid.UUID) -> Optional[Project]:
        result = await session.execute(
            select(Project).where(Project.id == job_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def get_job(self, job_id: uuid.UUID) -> Optional[Job]:
        try:
            async with self._session_factory() as session:
                row = await session.get(Project, job_id)
                return _row_to_job(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load job {job_id}") from exc

    async def save_job(self, job: Job, *, expected_phase_seq: Optional[int] = None) -> bool:
        columns = _job_to_columns(job)
        try:
            async with self._session_factory() as session:
                row = await self._load_for_update(session, job.id)
                if row is None:
                    session.add(Project(id=job.id, **columns))
                elif _refuses_write(job.phase_seq, row.phase_seq, expected_phase_seq):
                    logger.info(
                        "Refused job write",
                        extra={
                            "job_id": str(job.id),
                            "incoming_phase_seq": job.phase_seq,
                            "stored_phase_seq": row.phase_seq,
                        },
                    )
                    return False
                else:
                    for key, value in columns.items():
                        setattr(row, key, value)
                await session.commit()
                return True
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save job {job.id}") from exc

    async def write_progress(
        self, job_id: uuid.UUID, phase_seq: int, progress: JobProgress
    ) -> bool:
        try:
            async with self._session_factory() as session:
                row = await self._load_for_update(session, job_id)
                if row is None:
                    raise JobNotFoundError(str(job_id))
                stored_progress = None
                if row.progress_completed is not None and row.progress_total is not None:
                    stored_progress = JobProgress(
                        completed=row.progress_completed, total=row.progress_total
                    )
                if not accepts_progress(
                    JobStatus(row.status), row.phase_seq, stored_progress, phase_seq, progress
                ):
                    return False
                row.progress_completed = progress.completed
                row.progress_total = progress.total
                row.updated_at = utcnow()
                await session.commit()
                return True
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to write progress for job {job_id}") from exc

    async def merge_generated_copy(
        self, job_id: uuid.UUID, url: str, copy: GeneratedCopy
    ) -> None:
        try:
            async with self._session_factory() as session:
                row = await self._load_for_update(session, job_id)
                if row is None:
                    raise JobNotFoundError(str(job_id))
                scraped = (row.scrape_results or {}).get(url)
                if not scraped or not scraped.get("success"):
                    raise PersistenceError(
                        f"Cannot store copy for {url}: no successful scrape result"
                    )
                # Reassign a new dict so the JSON column is flagged dirty.
                generated = dict(row.generated_copy or {})
                generated[url] = copy.model_dump(mode="json")
                row.generated_copy = generated
                row.updated_at = utcnow()
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to store copy for job {job_id}") from exc


class SqlAccountRepository:
    """:class:`AccountRepository` over the ``profiles`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_account(self, owner_id: str) -> Optional[Account]:
        try:
            async with self._session_factory() as session:
                row = await session.get(Profile, owner_id)
                return _row_to_account(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load account {owner_id}") from exc

    async def save_account(self, account: Account) -> None:
        try:
            async with self._session_factory() as session:
                row = await session.get(Profile, account.owner_id)
                if row is None:
                    session.add(
                        Profile(
                            owner_id=account.owner_id,
                            membership=account.tier.value,
                            credit_units=account.balance,
                            created_at=account.created_at,
                            updated_at=account.updated_at,
                        )
                    )
                else:
                    row.membership = account.tier.value
                    row.credit_units = account.balance
                    row.updated_at = utcnow()
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save account {account.owner_id}") from exc

    async def debit(self, owner_id: str, units: int) -> int:
        """Subtract *units* with conditional ``UPDATE ... RETURNING`` statements.

        The balance arithmetic runs inside the database, so no stale balance
        read in Python is ever written back.  The first statement only
        matches when the balance covers the debit; otherwise the second one
        clamps the balance at zero.
        """
        if units < 0:
            raise ValueError("units must be non-negative")
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(Profile)
                    .where(Profile.owner_id == owner_id, Profile.credit_units >= units)
                    .values(credit_units=Profile.credit_units - units, updated_at=utcnow())
                    .returning(Profile.credit_units)
                    .execution_options(synchronize_session=False)
                )
                balance = result.scalar_one_or_none()
                if balance is None:
                    result = await session.execute(
                        update(Profile)
                        .where(Profile.owner_id == owner_id)
                        .values(
                            credit_units=case(
                                (Profile.credit_units > units, Profile.credit_units - units),
                                else_=0,
                            ),
                            updated_at=utcnow(),
                        )
                        .returning(Profile.credit_units)
                        .execution_options(synchronize_session=False)
                    )
                    balance = result.scalar_one_or_none()
                    if balance is None:
                        raise AccountNotFoundError(owner_id)
                    if balance == 0:
                        _log_clamped_debit(owner_id, units)
                await session.commit()
                return balance
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to debit account {owner_id}") from exc
