"""Job lifecycle state machine.

::

    pending ──▶ scraping ──▶ completed ──▶ generating ──▶ completed
                    │                          │
                    └────▶ failed ◀────────────┘

``failed`` is terminal: a new attempt needs a new job.  Every transition
returns a new :class:`Job` with ``phase_seq`` incremented; stores compare
``phase_seq`` to refuse writes from an earlier phase (e.g. a late progress
update landing after the final completion write).
"""

from __future__ import annotations

import logging
from typing import Optional

from rsa_writer.core.exceptions import InvalidTransitionError
from rsa_writer.core.schemas import GeneratedCopy, Job, JobProgress, JobStatus, utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.SCRAPING}),
    JobStatus.SCRAPING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset({JobStatus.GENERATING}),
    JobStatus.GENERATING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(job: Job, target: JobStatus, *, error_message: Optional[str] = None) -> Job:
    """Return a copy of *job* moved to *target*.

    Entering ``scraping`` resets progress to ``0/len(urls)``; leaving it
    clears progress.

    Raises:
        InvalidTransitionError: If *target* is not reachable from the
            job's current status.
    """
    if not can_transition(job.status, target):
        raise InvalidTransitionError(job.status.value, target.value)

    update: dict[str, object] = {
        "status": target,
        "phase_seq": job.phase_seq + 1,
        "updated_at": utcnow(),
        "error_message": error_message if target is JobStatus.FAILED else None,
    }
    if target is JobStatus.SCRAPING:
        update["progress"] = JobProgress(completed=0, total=len(job.urls))
    elif job.status is JobStatus.SCRAPING:
        update["progress"] = None

    logger.info(
        "Job status transition",
        extra={
            "job_id": str(job.id),
            "from_status": job.status.value,
            "to_status": target.value,
        },
    )
    return job.model_copy(update=update)


def start_scraping(job: Job) -> Job:
    return transition(job, JobStatus.SCRAPING)


def finish_scraping(job: Job) -> Job:
    """Close the scrape phase: ``completed`` iff at least one URL succeeded."""
    if job.successful_urls():
        return transition(job, JobStatus.COMPLETED)
    return transition(
        job,
        JobStatus.FAILED,
        error_message="Failed to scrape any URLs successfully",
    )


def start_generating(job: Job) -> Job:
    return transition(job, JobStatus.GENERATING)


def finish_generating(job: Job, *, had_eligible_input: bool = True) -> Job:
    """Close the generation phase.

    Per-URL generation failures never fail the phase; only a phase with no
    eligible scraped data at all ends in ``failed``.
    """
    if had_eligible_input:
        return transition(job, JobStatus.COMPLETED)
    return transition(
        job,
        JobStatus.FAILED,
        error_message="No scraped data available for generation",
    )


def with_progress(job: Job, completed: int, total: int) -> Job:
    """Return *job* with scrape progress updated (status and phase unchanged)."""
    return job.model_copy(
        update={"progress": JobProgress(completed=completed, total=total), "updated_at": utcnow()}
    )


def with_generated_copy(job: Job, url: str, copy: GeneratedCopy) -> Job:
    """Return *job* with *url*'s copy set, leaving other URLs' entries untouched.

    Raises:
        ValueError: If *url* has no successful scrape result.
    """
    result = job.scrape_results.get(url)
    if result is None or not result.success:
        raise ValueError(f"{url} has no successful scrape result")
    generated = dict(job.generated_copy)
    generated[url] = copy
    errors = {k: v for k, v in job.generation_errors.items() if k != url}
    return job.model_copy(
        update={"generated_copy": generated, "generation_errors": errors, "updated_at": utcnow()}
    )


def with_generation_error(job: Job, url: str, reason: str) -> Job:
    errors = dict(job.generation_errors)
    errors[url] = reason
    return job.model_copy(update={"generation_errors": errors, "updated_at": utcnow()})


# ---------------------------------------------------------------------------
# Monotonic write guards (used by every store implementation)
# ---------------------------------------------------------------------------


def is_stale_write(incoming_phase_seq: int, stored_phase_seq: int) -> bool:
    """Return ``True`` if a job write belongs to an earlier phase than the stored one."""
    return incoming_phase_seq < stored_phase_seq


def accepts_progress(
    stored_status: JobStatus,
    stored_phase_seq: int,
    stored_progress: Optional[JobProgress],
    incoming_phase_seq: int,
    incoming: JobProgress,
) -> bool:
    """Return ``True`` if a progress write may be applied to the stored job.

    Progress is only meaningful while scraping, within the same phase, and
    never moves backwards.
    """
    if stored_status is not JobStatus.SCRAPING or stored_phase_seq != incoming_phase_seq:
        return False
    if stored_progress is not None and incoming.completed < stored_progress.completed:
        return False
    return True
