"""Job store interface and the in-memory implementation.

The store owns every :class:`Job`. Callers only ever receive copies, and every status change goes
through :meth:`JobStore.update_status`, which enforces the job state machine. One store instance is
built per process by :func:`build_job_store` and injected into the pipeline and cleanup scheduler.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from statement_api.core.errors import InvalidInputError, InvalidTransitionError, JobNotFoundError
from statement_api.core.models import ALLOWED_TRANSITIONS, Job, JobStatus, is_allowed_transition
from statement_api.core.settings import Settings
from statement_api.core.utils import get_logger, utcnow

logger = get_logger("statement-api.jobs")

# extra field -> the only status it may be written with
EXTRA_FIELDS: dict[str, JobStatus] = {
    "accounts_detected": JobStatus.PROCESSED,
    "processed_data": JobStatus.PROCESSED,
    "error_message": JobStatus.FAILED,
}


def require_id(job_id: str) -> str:
    """Reject empty or non-string job ids."""
    if not job_id or not isinstance(job_id, str):
        msg = "jobId is required and must be a string"
        raise InvalidInputError(msg, details={"jobId": job_id})
    return job_id


def coerce_status(status: JobStatus | str) -> JobStatus:
    """Turn a status value into a :class:`JobStatus`, rejecting unknown values."""
    try:
        return JobStatus(status)
    except ValueError:
        allowed = ", ".join(member.value for member in JobStatus)
        msg = f"Invalid status: {status}. Must be one of: {allowed}"
        raise InvalidInputError(msg, details={"status": str(status)}) from None


def check_transition(job_id: str, current: JobStatus, new: JobStatus) -> None:
    """Raise :class:`InvalidTransitionError` unless ``current -> new`` is allowed."""
    if not is_allowed_transition(current, new):
        allowed = sorted(member.value for member in ALLOWED_TRANSITIONS[current])
        raise InvalidTransitionError(job_id, current.value, new.value, allowed)


def check_extra(status: JobStatus, extra: dict[str, Any]) -> None:
    """Validate the optional fields written alongside a status change."""
    for name in extra:
        if name not in EXTRA_FIELDS:
            msg = f"Unknown job field: {name}"
            raise InvalidInputError(msg, details={"field": name})
        if EXTRA_FIELDS[name] is not status:
            msg = f"{name} can only be set when status becomes {EXTRA_FIELDS[name].value}"
            raise InvalidInputError(msg, details={"field": name, "status": status.value})


class JobStore(ABC):
    """Keyed registry of jobs guarded by the status state machine."""

    @abstractmethod
    def create_job(self, file_name: str, storage_key: str) -> Job:
        """Create a job in ``uploaded`` status."""

    @abstractmethod
    def update_status(self, job_id: str, status: JobStatus | str, **extra: Any) -> Job:
        """Move a job to ``status``, writing any of accounts_detected, processed_data, error_message."""

    @abstractmethod
    def get_job(self, job_id: str) -> Job:
        """Return a copy of a job or raise :class:`JobNotFoundError`."""

    @abstractmethod
    def list_jobs(self) -> list[Job]:
        """Return copies of every job."""

    @abstractmethod
    def delete_job(self, job_id: str) -> bool:
        """Remove a job; returns whether it existed."""


class InMemoryJobStore(JobStore):
    """Dict-backed store; a lock serializes every read-check-write on the jobs."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        """Initialize an empty store."""
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def create_job(self, file_name: str, storage_key: str) -> Job:
        if not file_name or not isinstance(file_name, str):
            msg = "fileName is required and must be a string"
            raise InvalidInputError(msg)
        if not storage_key or not isinstance(storage_key, str):
            msg = "storageKey is required and must be a string"
            raise InvalidInputError(msg)
        now = self._clock()
        job = Job(
            job_id=str(uuid.uuid4()),
            file_name=file_name,
            storage_key=storage_key,
            status=JobStatus.UPLOADED,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._jobs[job.job_id] = job
            total = len(self._jobs)
        logger.info(f"Job created: {job.job_id} (total jobs: {total})")
        return job.model_copy(deep=True)

    def update_status(self, job_id: str, status: JobStatus | str, **extra: Any) -> Job:
        require_id(job_id)
        new_status = coerce_status(status)
        check_extra(new_status, extra)
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            check_transition(job_id, job.status, new_status)
            updated = job.model_copy(deep=True, update={"status": new_status, "updated_at": self._clock(), **extra})
            self._jobs[job_id] = updated
        logger.info(f"Job {job_id}: {job.status.value} -> {new_status.value}")
        return updated.model_copy(deep=True)

    def get_job(self, job_id: str) -> Job:
        require_id(job_id)
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.model_copy(deep=True)

    def list_jobs(self) -> list[Job]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def delete_job(self, job_id: str) -> bool:
        require_id(job_id)
        with self._lock:
            return self._jobs.pop(job_id, None) is not None


def build_job_store(settings: Settings, clock: Callable[[], datetime] = utcnow) -> JobStore:
    """Build the job store selected by ``settings.job_store_backend``."""
    if settings.job_store_backend == "sql":
        from statement_api.core.db import SqlJobStore, get_engine

        logger.info("Using SQL job store")
        return SqlJobStore(get_engine(settings.database_url), clock=clock)
    logger.info("Using in-memory job store")
    return InMemoryJobStore(clock=clock)
