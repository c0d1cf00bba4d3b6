"""Statement processing pipeline.

A job moves through retrieve -> analyze -> normalize -> validate in one pass. Each stage runs under
its own wall-clock budget; any failure marks the job failed with a readable error message before the
typed stage error reaches the caller, so the stored job and the response always agree.
"""

import asyncio
from collections.abc import Awaitable, Mapping
from typing import Any, TypeVar

from statement_api.agents.base import BaseAgent
from statement_api.core.errors import (
    AnalysisFailedError,
    InvalidJobStatusError,
    InvalidTransitionError,
    JobNotFoundError,
    JobNotProcessedError,
    MissingProcessedDataError,
    NormalizationFailedError,
    PipelineStageError,
    RetrievalFailedError,
    StatementApiError,
    ValidationFailedError,
)
from statement_api.core.job_store import JobStore
from statement_api.core.models import Job, JobStatus, ProcessResponse, ResultResponse
from statement_api.core.sanitizer import sanitize_processed_data
from statement_api.core.settings import Settings
from statement_api.core.utils import get_logger
from statement_api.core.validation import validate_statement_payload
from statement_api.services.base import DocumentAnalyzer, FileStorage

logger = get_logger("statement-api.pipeline")

T = TypeVar("T")


def _describe(exc: BaseException) -> str:
    if isinstance(exc, StatementApiError):
        return exc.message
    if isinstance(exc, TimeoutError):
        return "timed out"
    return str(exc) or type(exc).__name__


class StatementPipeline:
    """Runs uploaded statements through storage, document analysis and AI normalization."""

    def __init__(
        self,
        store: JobStore,
        storage: FileStorage,
        analyzer: DocumentAnalyzer,
        agent: BaseAgent,
        settings: Settings,
    ) -> None:
        """Initialize the pipeline with its job store and collaborators."""
        self.store = store
        self.storage = storage
        self.analyzer = analyzer
        self.agent = agent
        self.settings = settings

    # --- Job entry points ---

    async def upload(self, data: bytes, content_type: str, file_name: str) -> Job:
        """Store an uploaded document and create its job."""
        storage_key = await self.storage.put(data, content_type, file_name)
        logger.info(f"Stored upload {file_name} ({len(data)} bytes) as {storage_key}")
        return self.store.create_job(file_name, storage_key)

    def create_job(self, file_name: str, storage_key: str) -> Job:
        return self.store.create_job(file_name, storage_key)

    def get_status(self, job_id: str) -> Job:
        return self.store.get_job(job_id)

    def get_result(self, job_id: str) -> ResultResponse:
        """Return the sanitized statement data of a processed job."""
        job = self.store.get_job(job_id)
        if job.status is not JobStatus.PROCESSED:
            msg = f"Job has not been processed successfully. Current status: {job.status.value}"
            raise JobNotProcessedError(
                msg,
                details={"jobId": job_id, "currentStatus": job.status.value, "errorMessage": job.error_message},
            )
        if job.processed_data is None:
            msg = "Job is processed but has no stored result"
            raise MissingProcessedDataError(msg, details={"jobId": job_id})
        sanitized = sanitize_processed_data(job.processed_data)
        return ResultResponse(file_name=sanitized["fileName"], accounts=sanitized["accounts"])

    # --- Processing ---

    async def process(self, job_id: str) -> ProcessResponse:
        """Run every stage for an uploaded job and return the processed summary."""
        job = self.store.get_job(job_id)
        if job.status is not JobStatus.UPLOADED:
            msg = f"Job cannot be processed in status {job.status.value}; expected {JobStatus.UPLOADED.value}"
            raise InvalidJobStatusError(msg, details={"jobId": job_id, "currentStatus": job.status.value})
        try:
            job = self.store.update_status(job_id, JobStatus.PROCESSING)
        except InvalidTransitionError as exc:
            # another caller claimed the job between the read and the write
            msg = f"Job cannot be processed in status {exc.current}; expected {JobStatus.UPLOADED.value}"
            raise InvalidJobStatusError(msg, details={"jobId": job_id, "currentStatus": exc.current}) from exc

        logger.info(f"Processing job {job_id} ({job.file_name})")

        document = await self._run_stage(
            job,
            self.storage.get(job.storage_key),
            self.settings.storage_timeout_seconds,
            RetrievalFailedError,
            "Failed to retrieve document from storage",
        )
        if not document:
            await self._fail_stage(job, RetrievalFailedError, "Failed to retrieve document from storage", "empty file")
        logger.info(f"Job {job_id}: retrieved {len(document)} bytes")

        analysis = await self._run_stage(
            job,
            self.analyzer.analyze(job.storage_key),
            self.settings.analysis_timeout_seconds,
            AnalysisFailedError,
            "Document analysis failed",
        )
        if not isinstance(analysis, Mapping):
            await self._fail_stage(job, AnalysisFailedError, "Document analysis failed", "result is not an object")
        logger.info(f"Job {job_id}: analysis returned {len(analysis.get('blocks') or [])} blocks")

        normalized = await self._run_stage(
            job,
            self.agent.normalize(analysis, job.file_name),
            self.settings.normalization_stage_timeout_seconds,
            NormalizationFailedError,
            "AI normalization failed",
        )

        try:
            result = validate_statement_payload(normalized)
        except Exception as exc:
            logger.exception(f"Job {job_id}: validation raised")
            await self._fail_stage(job, ValidationFailedError, "Data validation failed", _describe(exc), cause=exc)
        if not result.is_valid:
            issues = [{"kind": issue.kind.value, "path": issue.path, "message": issue.message} for issue in result.issues]
            logger.warning(f"Job {job_id}: validation found {len(issues)} issue(s)")
            await self._fail_stage(job, ValidationFailedError, "Data validation failed", result.error, {"issues": issues})

        accounts_detected = len(result.value["accounts"])
        try:
            self.store.update_status(
                job_id,
                JobStatus.PROCESSED,
                accounts_detected=accounts_detected,
                processed_data=result.value,
            )
        except JobNotFoundError:
            raise
        except Exception as exc:
            logger.exception(f"Job {job_id}: storing the processed data failed")
            await self._fail_stage(job, ValidationFailedError, "Failed to store processed data", _describe(exc), cause=exc)
        logger.info(f"Job {job_id} processed: {accounts_detected} account(s)")
        return ProcessResponse(job_id=job_id, status=JobStatus.PROCESSED, accounts_detected=accounts_detected)

    async def _run_stage(
        self,
        job: Job,
        call: Awaitable[T],
        timeout: float,
        error_cls: type[PipelineStageError],
        prefix: str,
    ) -> T:
        logger.info(f"Job {job.job_id}: stage {error_cls.stage} started")
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except Exception as exc:
            logger.exception(f"Job {job.job_id}: stage {error_cls.stage} failed")
            reason = f"timed out after {timeout}s" if isinstance(exc, TimeoutError) else _describe(exc)
            cause = {"cause": getattr(exc, "code", type(exc).__name__)}
            await self._fail_stage(job, error_cls, prefix, reason, cause, exc)

    async def _fail_stage(
        self,
        job: Job,
        error_cls: type[PipelineStageError],
        prefix: str,
        reason: str | None,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        message = f"{prefix}: {reason}"
        try:
            self.store.update_status(job.job_id, JobStatus.FAILED, error_message=message)
        except (JobNotFoundError, InvalidTransitionError) as exc:
            logger.warning(f"Job {job.job_id}: could not record failure ({exc.message})")
        raise error_cls(message, details={"jobId": job.job_id, "stage": error_cls.stage, **(details or {})}) from cause
