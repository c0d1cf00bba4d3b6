"""Tests for the job store backends and the job status state machine."""

from collections.abc import Iterator

import pytest

from statement_api.core.db import SqlJobStore, get_engine
from statement_api.core.errors import InvalidInputError, InvalidTransitionError, JobNotFoundError
from statement_api.core.job_store import InMemoryJobStore, JobStore, build_job_store
from statement_api.core.models import JobStatus
from tests.fakes import FakeClock, make_settings


@pytest.fixture(params=["memory", "sql"])
def job_store(request: pytest.FixtureRequest, clock: FakeClock, tmp_path) -> Iterator[JobStore]:  # noqa: ANN001
    """Each test runs against both backends."""
    if request.param == "memory":
        yield InMemoryJobStore(clock=clock)
        return
    engine = get_engine(f"sqlite:///{tmp_path / 'jobs.db'}")
    yield SqlJobStore(engine, clock=clock)
    engine.dispose()


def test_create_job(job_store: JobStore, clock: FakeClock) -> None:
    """New jobs start uploaded with both timestamps set to now."""
    job = job_store.create_job("statement.pdf", "statements/a.pdf")
    if job.status is not JobStatus.UPLOADED:
        msg = f"Expected uploaded, got {job.status}"
        raise AssertionError(msg)
    if job.created_at != clock.now or job.updated_at != clock.now:
        msg = "Timestamps must be set from the clock"
        raise AssertionError(msg)
    if job.accounts_detected is not None or job.processed_data is not None or job.error_message is not None:
        msg = "Result fields must be empty on a new job"
        raise AssertionError(msg)


@pytest.mark.parametrize(("file_name", "storage_key"), [("", "key"), ("a.pdf", "")])
def test_create_job_requires_arguments(job_store: JobStore, file_name: str, storage_key: str) -> None:
    with pytest.raises(InvalidInputError):
        job_store.create_job(file_name, storage_key)


def test_allowed_transitions(job_store: JobStore, clock: FakeClock) -> None:
    """uploaded -> processing -> processed writes the result and bumps updatedAt."""
    job = job_store.create_job("statement.pdf", "k")
    clock.advance(minutes=1)
    job_store.update_status(job.job_id, JobStatus.PROCESSING)
    clock.advance(minutes=1)
    done = job_store.update_status(
        job.job_id, "processed", accounts_detected=1, processed_data={"fileName": "statement.pdf", "accounts": []}
    )
    if done.status is not JobStatus.PROCESSED or done.accounts_detected != 1:
        msg = f"Unexpected processed job: {done}"
        raise AssertionError(msg)
    if done.updated_at != clock.now or done.created_at == done.updated_at:
        msg = "updatedAt must move with every status change"
        raise AssertionError(msg)
    if job_store.get_job(job.job_id).processed_data != {"fileName": "statement.pdf", "accounts": []}:
        msg = "processed_data must be stored"
        raise AssertionError(msg)


def test_uploaded_can_fail_directly(job_store: JobStore) -> None:
    job = job_store.create_job("statement.pdf", "k")
    failed = job_store.update_status(job.job_id, JobStatus.FAILED, error_message="boom")
    if failed.error_message != "boom":
        msg = f"Expected error message to be stored, got {failed.error_message!r}"
        raise AssertionError(msg)


@pytest.mark.parametrize(
    ("path", "attempted"),
    [
        ([], JobStatus.PROCESSED),
        ([], JobStatus.UPLOADED),
        ([JobStatus.PROCESSING], JobStatus.PROCESSING),
        ([JobStatus.PROCESSING], JobStatus.UPLOADED),
        ([JobStatus.FAILED], JobStatus.PROCESSING),
        ([JobStatus.PROCESSING, JobStatus.PROCESSED], JobStatus.FAILED),
    ],
)
def test_invalid_transitions_leave_job_unchanged(
    job_store: JobStore, path: list[JobStatus], attempted: JobStatus
) -> None:
    """Edges outside the state machine raise and do not touch the job."""
    job = job_store.create_job("statement.pdf", "k")
    for status in path:
        extra = {"error_message": "x"} if status is JobStatus.FAILED else {}
        job_store.update_status(job.job_id, status, **extra)
    before = job_store.get_job(job.job_id)
    with pytest.raises(InvalidTransitionError):
        job_store.update_status(job.job_id, attempted)
    if job_store.get_job(job.job_id) != before:
        msg = "A rejected transition must not modify the job"
        raise AssertionError(msg)


def test_update_status_rejects_bad_input(job_store: JobStore) -> None:
    job = job_store.create_job("statement.pdf", "k")
    with pytest.raises(InvalidInputError):
        job_store.update_status(job.job_id, "archived")
    with pytest.raises(InvalidInputError):
        job_store.update_status("", JobStatus.PROCESSING)
    with pytest.raises(InvalidInputError):
        job_store.update_status(job.job_id, JobStatus.PROCESSING, error_message="only on failure")
    with pytest.raises(JobNotFoundError):
        job_store.update_status("missing", JobStatus.PROCESSING)


def test_get_job_returns_copies(job_store: JobStore) -> None:
    """Mutating a returned job is never visible in the store."""
    job = job_store.create_job("statement.pdf", "k")
    job_store.update_status(job.job_id, JobStatus.PROCESSING)
    job_store.update_status(
        job.job_id, JobStatus.PROCESSED, accounts_detected=1, processed_data={"fileName": "a", "accounts": []}
    )
    copy = job_store.get_job(job.job_id)
    copy.status = JobStatus.UPLOADED
    copy.processed_data["accounts"].append({"injected": True})
    fresh = job_store.get_job(job.job_id)
    if fresh.status is not JobStatus.PROCESSED or fresh.processed_data["accounts"]:
        msg = f"Store state leaked through a returned copy: {fresh}"
        raise AssertionError(msg)


def test_get_job_missing(job_store: JobStore) -> None:
    with pytest.raises(JobNotFoundError):
        job_store.get_job("missing")


def test_list_and_delete(job_store: JobStore) -> None:
    """Deletion is idempotent and reports whether a job was removed."""
    first = job_store.create_job("a.pdf", "k1")
    job_store.create_job("b.pdf", "k2")
    if len(job_store.list_jobs()) != 2:  # noqa: PLR2004
        msg = "Expected two jobs"
        raise AssertionError(msg)
    if not job_store.delete_job(first.job_id):
        msg = "First delete should report a removal"
        raise AssertionError(msg)
    if job_store.delete_job(first.job_id):
        msg = "Second delete should report nothing removed"
        raise AssertionError(msg)
    if [job.file_name for job in job_store.list_jobs()] != ["b.pdf"]:
        msg = "Only the second job should remain"
        raise AssertionError(msg)


def test_build_job_store_selects_backend(tmp_path) -> None:  # noqa: ANN001
    memory = build_job_store(make_settings())
    sql = build_job_store(make_settings(job_store_backend="sql", database_url=f"sqlite:///{tmp_path / 'j.db'}"))
    if not isinstance(memory, InMemoryJobStore) or not isinstance(sql, SqlJobStore):
        msg = f"Unexpected backends: {type(memory).__name__}, {type(sql).__name__}"
        raise AssertionError(msg)
