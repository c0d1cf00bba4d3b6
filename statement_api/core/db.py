"""SQLAlchemy-backed job store for deployments that need jobs to outlive the process."""

import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine, Row
from sqlalchemy.pool import StaticPool

from statement_api.core.errors import InvalidInputError, InvalidTransitionError, JobNotFoundError
from statement_api.core.job_store import JobStore, check_extra, check_transition, coerce_status, require_id
from statement_api.core.models import ALLOWED_TRANSITIONS, Job, JobStatus
from statement_api.core.utils import get_logger, utcnow

logger = get_logger("statement-api.jobs.sql")

metadata = MetaData()
jobs_table = Table(
    "jobs",
    metadata,
    Column("id", String, primary_key=True),
    Column("file_name", String, nullable=False),
    Column("storage_key", String, nullable=False),
    Column("status", String, nullable=False, index=True),
    Column("accounts_detected", Integer, nullable=True),
    Column("processed_data", JSON(none_as_null=True), nullable=True),
    Column("error_message", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


def get_engine(url: str) -> Engine:
    """Create a SQLAlchemy engine for the configured database URL."""
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _row_to_job(row: Row) -> Job:
    return Job(
        job_id=row.id,
        file_name=row.file_name,
        storage_key=row.storage_key,
        status=JobStatus(row.status),
        accounts_detected=row.accounts_detected,
        processed_data=row.processed_data,
        error_message=row.error_message,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class SqlJobStore(JobStore):
    """Job store over a ``jobs`` table; status writes are conditional on the status that was read."""

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow) -> None:
        """Bind the store to an engine and make sure the jobs table exists."""
        self.engine = engine
        self._clock = clock
        metadata.create_all(engine, tables=[jobs_table])

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
        with self.engine.begin() as conn:
            conn.execute(
                insert(jobs_table).values(
                    id=job.job_id,
                    file_name=job.file_name,
                    storage_key=job.storage_key,
                    status=job.status.value,
                    created_at=now,
                    updated_at=now,
                )
            )
        logger.info(f"Job created: {job.job_id}")
        return job

    def update_status(self, job_id: str, status: JobStatus | str, **extra: Any) -> Job:
        require_id(job_id)
        new_status = coerce_status(status)
        check_extra(new_status, extra)
        with self.engine.begin() as conn:
            row = conn.execute(select(jobs_table).where(jobs_table.c.id == job_id)).first()
            if row is None:
                raise JobNotFoundError(job_id)
            current = JobStatus(row.status)
            check_transition(job_id, current, new_status)
            result = conn.execute(
                update(jobs_table)
                .where(jobs_table.c.id == job_id, jobs_table.c.status == current.value)
                .values(status=new_status.value, updated_at=self._clock(), **extra)
            )
            if result.rowcount == 0:
                # another writer moved the job between our read and write
                latest = conn.execute(select(jobs_table.c.status).where(jobs_table.c.id == job_id)).scalar()
                if latest is None:
                    raise JobNotFoundError(job_id)
                allowed = sorted(member.value for member in ALLOWED_TRANSITIONS[JobStatus(latest)])
                raise InvalidTransitionError(job_id, latest, new_status.value, allowed)
            updated = conn.execute(select(jobs_table).where(jobs_table.c.id == job_id)).one()
        logger.info(f"Job {job_id}: {current.value} -> {new_status.value}")
        return _row_to_job(updated)

    def get_job(self, job_id: str) -> Job:
        require_id(job_id)
        with self.engine.connect() as conn:
            row = conn.execute(select(jobs_table).where(jobs_table.c.id == job_id)).first()
        if row is None:
            raise JobNotFoundError(job_id)
        return _row_to_job(row)

    def list_jobs(self) -> list[Job]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(jobs_table)).all()
        return [_row_to_job(row) for row in rows]

    def delete_job(self, job_id: str) -> bool:
        require_id(job_id)
        with self.engine.begin() as conn:
            result = conn.execute(delete(jobs_table).where(jobs_table.c.id == job_id))
        return result.rowcount > 0
