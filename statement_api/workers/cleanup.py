"""Retention-based cleanup of terminal jobs and their stored documents.

Processed jobs are reclaimed after ``completed_job_retention_seconds`` and failed jobs after
``failed_job_retention_seconds``, both measured from the job's last update. Uploaded and processing
jobs are never reclaimed. A background asyncio task sweeps every ``cleanup_interval_seconds``; the
same operations are available on demand for the admin endpoints.
"""

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from pydantic import Field

from statement_api.core.errors import JobNotFoundError
from statement_api.core.job_store import JobStore
from statement_api.core.models import CamelModel, Job, JobStatus
from statement_api.core.settings import Settings
from statement_api.core.utils import get_logger, utcnow
from statement_api.services.base import FileStorage

logger = get_logger("statement-api.cleanup")


class CleanupStats(CamelModel):
    """Outcome of one sweep."""

    jobs_processed: int = 0
    jobs_deleted: int = 0
    files_deleted: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0


class CleanupScheduler:
    """Deletes expired jobs and their files, on a timer or on demand."""

    def __init__(
        self,
        store: JobStore,
        storage: FileStorage,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the scheduler; it does not run until :meth:`start` is called."""
        self.store = store
        self.storage = storage
        self.settings = settings
        self.clock = clock
        self._task: asyncio.Task[None] | None = None
        self._last_run: datetime | None = None
        self._last_stats: CleanupStats | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # --- Policy ---

    def retention_for(self, status: JobStatus) -> timedelta | None:
        """Retention window of a status, or None when jobs in it are never reclaimed."""
        if status is JobStatus.PROCESSED:
            return timedelta(seconds=self.settings.completed_job_retention_seconds)
        if status is JobStatus.FAILED:
            return timedelta(seconds=self.settings.failed_job_retention_seconds)
        return None

    def is_eligible(self, job: Job, now: datetime | None = None) -> bool:
        """Return whether a job has outlived the retention window of its status."""
        retention = self.retention_for(job.status)
        if retention is None:
            return False
        return (now or self.clock()) - job.updated_at > retention

    # --- Sweeps ---

    async def sweep(self) -> CleanupStats:
        """Reclaim expired jobs, oldest first, up to ``max_jobs_per_cleanup`` per sweep."""
        started = time.monotonic()
        now = self.clock()
        eligible = sorted(
            (job for job in self.store.list_jobs() if self.is_eligible(job, now)),
            key=lambda job: job.updated_at,
        )
        logger.info(f"Cleanup sweep started: {len(eligible)} eligible job(s)")
        stats = await self._reclaim(eligible, limit=self.settings.max_jobs_per_cleanup)
        stats.duration_ms = int((time.monotonic() - started) * 1000)
        self._last_run = now
        self._last_stats = stats
        logger.info(
            f"Cleanup sweep finished: {stats.jobs_deleted} job(s) and {stats.files_deleted} file(s) deleted, "
            f"{len(stats.errors)} error(s) in {stats.duration_ms}ms"
        )
        return stats

    async def cleanup_job_by_id(self, job_id: str) -> bool:
        """Delete one job and its file regardless of status; returns whether the job existed."""
        try:
            job = self.store.get_job(job_id)
        except JobNotFoundError:
            return False
        await self.storage.delete(job.storage_key)
        deleted = self.store.delete_job(job_id)
        logger.info(f"Job {job_id} deleted on request")
        return deleted

    async def cleanup_failed_jobs(self) -> int:
        """Delete every failed job immediately, whatever its age."""
        failed = [job for job in self.store.list_jobs() if job.status is JobStatus.FAILED]
        stats = await self._reclaim(failed)
        logger.info(f"Deleted {stats.jobs_deleted} failed job(s)")
        return stats.jobs_deleted

    async def cleanup_expired_completed_jobs(self) -> int:
        """Delete processed jobs older than the completed-job retention."""
        now = self.clock()
        expired = [
            job for job in self.store.list_jobs() if job.status is JobStatus.PROCESSED and self.is_eligible(job, now)
        ]
        stats = await self._reclaim(expired)
        logger.info(f"Deleted {stats.jobs_deleted} expired processed job(s)")
        return stats.jobs_deleted

    async def _reclaim(self, jobs: list[Job], limit: int | None = None) -> CleanupStats:
        stats = CleanupStats()
        for job in jobs:
            if limit is not None and stats.jobs_deleted >= limit:
                break
            stats.jobs_processed += 1
            try:
                await self.storage.delete(job.storage_key)
            except Exception as exc:
                # keep the record so the next sweep retries the file
                logger.exception(f"Failed to delete file for job {job.job_id}")
                stats.errors.append(f"Job {job.job_id}: file delete failed: {exc}")
                continue
            stats.files_deleted += 1
            if self.store.delete_job(job.job_id):
                stats.jobs_deleted += 1
        return stats

    def get_status(self) -> dict[str, Any]:
        """Report job counts, eligibility and scheduler state without changing anything."""
        now = self.clock()
        jobs = self.store.list_jobs()
        by_status = {status.value: 0 for status in JobStatus}
        for job in jobs:
            by_status[job.status.value] += 1
        next_run = None
        if self.is_running:
            base = self._last_run or now
            next_run = (base + timedelta(seconds=self.settings.cleanup_interval_seconds)).isoformat()
        return {
            "isRunning": self.is_running,
            "totalJobs": len(jobs),
            "jobsByStatus": by_status,
            "eligibleForCleanup": sum(1 for job in jobs if self.is_eligible(job, now)),
            "config": {
                "completedJobRetentionSeconds": self.settings.completed_job_retention_seconds,
                "failedJobRetentionSeconds": self.settings.failed_job_retention_seconds,
                "cleanupIntervalSeconds": self.settings.cleanup_interval_seconds,
                "maxJobsPerCleanup": self.settings.max_jobs_per_cleanup,
            },
            "lastRun": self._last_run.isoformat() if self._last_run else None,
            "lastStats": self._last_stats.model_dump(by_alias=True) if self._last_stats else None,
            "nextRunEstimate": next_run,
        }

    # --- Scheduling ---

    def start(self) -> None:
        """Start the background sweep loop; does nothing when it is already running."""
        if self.is_running:
            logger.info("Cleanup scheduler already running")
            return
        self._task = asyncio.create_task(self._run_forever(), name="statement-cleanup")
        logger.info(f"Cleanup scheduler started (interval {self.settings.cleanup_interval_seconds}s)")

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Cleanup scheduler stopped")

    async def shutdown(self, final_sweep: bool = False) -> CleanupStats | None:
        """Stop the scheduler and optionally run one last sweep."""
        await self.stop()
        if final_sweep:
            logger.info("Running final cleanup sweep")
            return await self.sweep()
        return None

    async def _run_forever(self) -> None:
        while True:
            try:
                await self.sweep()
            except Exception:
                logger.exception("Cleanup sweep failed")
            await asyncio.sleep(self.settings.cleanup_interval_seconds)
