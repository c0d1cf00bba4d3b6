"""Tests for retention cleanup and the cleanup scheduler lifecycle."""

import asyncio

from statement_api.core.errors import JobNotFoundError
from statement_api.core.job_store import InMemoryJobStore
from statement_api.core.models import Job, JobStatus
from statement_api.workers.cleanup import CleanupScheduler
from tests.fakes import BrokenStorage, FakeClock, FakeStorage, make_settings


def make_job(store: InMemoryJobStore, storage: FakeStorage, status: JobStatus, name: str = "statement.pdf") -> Job:
    key = asyncio.run(storage.put(b"%PDF-", "application/pdf", name))
    job = store.create_job(name, key)
    if status in (JobStatus.PROCESSING, JobStatus.PROCESSED):
        store.update_status(job.job_id, JobStatus.PROCESSING)
    if status is JobStatus.PROCESSED:
        store.update_status(job.job_id, JobStatus.PROCESSED, accounts_detected=0, processed_data={"accounts": []})
    if status is JobStatus.FAILED:
        store.update_status(job.job_id, JobStatus.FAILED, error_message="boom")
    return store.get_job(job.job_id)


def test_expired_processed_job_is_deleted(
    cleanup: CleanupScheduler, store: InMemoryJobStore, storage: FakeStorage, clock: FakeClock
) -> None:
    """A processed job 25 hours old is reclaimed together with its file."""
    job = make_job(store, storage, JobStatus.PROCESSED)
    clock.advance(hours=25)
    stats = asyncio.run(cleanup.sweep())
    if stats.jobs_deleted != 1 or stats.files_deleted != 1 or stats.errors:
        msg = f"Unexpected stats: {stats}"
        raise AssertionError(msg)
    if job.storage_key in storage.files:
        msg = "The stored file must be deleted"
        raise AssertionError(msg)
    try:
        store.get_job(job.job_id)
    except JobNotFoundError:
        return
    msg = "The job must be gone after the sweep"
    raise AssertionError(msg)


def test_recent_processed_job_is_kept(
    cleanup: CleanupScheduler, store: InMemoryJobStore, storage: FakeStorage, clock: FakeClock
) -> None:
    job = make_job(store, storage, JobStatus.PROCESSED)
    clock.advance(hours=1)
    stats = asyncio.run(cleanup.sweep())
    if stats.jobs_deleted != 0 or store.get_job(job.job_id).status is not JobStatus.PROCESSED:
        msg = f"A one hour old job must survive, got {stats}"
        raise AssertionError(msg)


def test_failed_jobs_use_their_own_retention(
    cleanup: CleanupScheduler, store: InMemoryJobStore, storage: FakeStorage, clock: FakeClock
) -> None:
    """Failed jobs survive a day and are reclaimed after a week."""
    make_job(store, storage, JobStatus.FAILED)
    clock.advance(days=2)
    if asyncio.run(cleanup.sweep()).jobs_deleted != 0:
        msg = "A two day old failed job must survive"
        raise AssertionError(msg)
    clock.advance(days=6)
    if asyncio.run(cleanup.sweep()).jobs_deleted != 1:
        msg = "An eight day old failed job must be reclaimed"
        raise AssertionError(msg)


def test_in_flight_jobs_are_never_reclaimed(
    cleanup: CleanupScheduler, store: InMemoryJobStore, storage: FakeStorage, clock: FakeClock
) -> None:
    make_job(store, storage, JobStatus.UPLOADED)
    make_job(store, storage, JobStatus.PROCESSING)
    clock.advance(days=365)
    stats = asyncio.run(cleanup.sweep())
    if stats.jobs_deleted != 0 or len(store.list_jobs()) != 2:  # noqa: PLR2004
        msg = f"Uploaded and processing jobs must never be reclaimed, got {stats}"
        raise AssertionError(msg)


def test_sweep_bound_takes_oldest_first(store: InMemoryJobStore, storage: FakeStorage, clock: FakeClock) -> None:
    cleanup = CleanupScheduler(store, storage, make_settings(max_jobs_per_cleanup=2), clock=clock)
    oldest = make_job(store, storage, JobStatus.PROCESSED, "1.pdf")
    clock.advance(minutes=1)
    second = make_job(store, storage, JobStatus.PROCESSED, "2.pdf")
    clock.advance(minutes=1)
    newest = make_job(store, storage, JobStatus.PROCESSED, "3.pdf")
    clock.advance(hours=25)
    stats = asyncio.run(cleanup.sweep())
    remaining = [job.job_id for job in store.list_jobs()]
    if stats.jobs_deleted != 2 or remaining != [newest.job_id]:  # noqa: PLR2004
        msg = f"Expected the two oldest jobs reclaimed, got {stats} leaving {remaining}"
        raise AssertionError(msg)
    if oldest.storage_key in storage.files or second.storage_key in storage.files:
        msg = "Files of reclaimed jobs must be deleted"
        raise AssertionError(msg)


def test_file_delete_failure_keeps_job(store: InMemoryJobStore, clock: FakeClock) -> None:
    """A failed file delete is recorded and the job stays for the next sweep."""
    storage = BrokenStorage()
    cleanup = CleanupScheduler(store, storage, make_settings(), clock=clock)
    job = make_job(store, storage, JobStatus.FAILED)
    clock.advance(days=8)
    stats = asyncio.run(cleanup.sweep())
    if stats.jobs_deleted != 0 or len(stats.errors) != 1 or job.job_id not in stats.errors[0]:
        msg = f"Unexpected stats: {stats}"
        raise AssertionError(msg)
    if store.get_job(job.job_id).status is not JobStatus.FAILED:
        msg = "The job record must remain"
        raise AssertionError(msg)


def test_on_demand_operations(
    cleanup: CleanupScheduler, store: InMemoryJobStore, storage: FakeStorage, clock: FakeClock
) -> None:
    uploaded = make_job(store, storage, JobStatus.UPLOADED)
    make_job(store, storage, JobStatus.FAILED)
    make_job(store, storage, JobStatus.FAILED)
    make_job(store, storage, JobStatus.PROCESSED)
    clock.advance(hours=2)
    fresh = make_job(store, storage, JobStatus.PROCESSED)

    if asyncio.run(cleanup.cleanup_failed_jobs()) != 2:  # noqa: PLR2004
        msg = "Both failed jobs must be deleted immediately"
        raise AssertionError(msg)
    clock.advance(hours=23)
    if asyncio.run(cleanup.cleanup_expired_completed_jobs()) != 1:
        msg = "Only the expired processed job must be deleted"
        raise AssertionError(msg)
    if not asyncio.run(cleanup.cleanup_job_by_id(uploaded.job_id)):
        msg = "Deleting an existing job by id must report success"
        raise AssertionError(msg)
    if asyncio.run(cleanup.cleanup_job_by_id(uploaded.job_id)):
        msg = "Deleting a missing job by id must report nothing deleted"
        raise AssertionError(msg)
    if [job.job_id for job in store.list_jobs()] != [fresh.job_id]:
        msg = "Only the fresh processed job must remain"
        raise AssertionError(msg)


def test_get_status_does_not_mutate(
    cleanup: CleanupScheduler, store: InMemoryJobStore, storage: FakeStorage, clock: FakeClock
) -> None:
    make_job(store, storage, JobStatus.PROCESSED)
    make_job(store, storage, JobStatus.UPLOADED)
    clock.advance(hours=25)
    status = cleanup.get_status()
    if status["totalJobs"] != 2 or status["eligibleForCleanup"] != 1:  # noqa: PLR2004
        msg = f"Unexpected status: {status}"
        raise AssertionError(msg)
    if status["jobsByStatus"]["processed"] != 1 or status["isRunning"]:
        msg = f"Unexpected status: {status}"
        raise AssertionError(msg)
    if len(store.list_jobs()) != 2:  # noqa: PLR2004
        msg = "get_status must not delete anything"
        raise AssertionError(msg)


def test_scheduler_lifecycle(
    cleanup: CleanupScheduler, store: InMemoryJobStore, storage: FakeStorage, clock: FakeClock
) -> None:
    """start is idempotent, the loop sweeps, stop is idempotent and shutdown can sweep once more."""
    make_job(store, storage, JobStatus.PROCESSED)
    clock.advance(hours=25)

    async def run() -> None:
        cleanup.start()
        task = cleanup._task
        cleanup.start()
        if cleanup._task is not task or not cleanup.is_running:
            msg = "A second start must not create another loop"
            raise AssertionError(msg)
        await asyncio.sleep(0.05)
        if store.list_jobs():
            msg = "The background loop must sweep on start"
            raise AssertionError(msg)
        await cleanup.stop()
        await cleanup.stop()
        if cleanup.is_running:
            msg = "The scheduler must be stopped"
            raise AssertionError(msg)
        add_expired_failed_job()
        stats = await cleanup.shutdown(final_sweep=True)
        if stats is None or stats.jobs_deleted != 1:
            msg = f"The final sweep must reclaim the expired job, got {stats}"
            raise AssertionError(msg)

    def add_expired_failed_job() -> None:
        job = store.create_job("late.pdf", "statements/late.pdf")
        store.update_status(job.job_id, JobStatus.FAILED, error_message="boom")
        clock.advance(days=8)

    asyncio.run(run())
