"""FastAPI endpoints for the Bank Statement API.

This module defines the routes for uploading statement PDFs, processing them, polling job status,
fetching normalized results, the cleanup admin endpoints and the health check. It wires the
statement pipeline and the cleanup scheduler provided by :mod:`statement_api.api.dependencies`.
"""

import uuid
from pathlib import PurePath
from typing import Any

from fastapi import APIRouter, Depends, UploadFile

from statement_api.api.dependencies import get_app_settings, get_cleanup, get_pipeline
from statement_api.core.errors import InvalidInputError, JobNotFoundError
from statement_api.core.models import JobStatusResponse, ProcessResponse, ResultResponse, UploadResponse
from statement_api.core.settings import Settings
from statement_api.core.utils import get_logger
from statement_api.workers.cleanup import CleanupScheduler, CleanupStats
from statement_api.workers.pipeline import StatementPipeline

router = APIRouter()
statements = APIRouter(prefix="/api/statements", tags=["statements"])
admin = APIRouter(prefix="/api/admin/cleanup", tags=["admin"])
logger = get_logger("statement-api.api")

PDF_CONTENT_TYPES = frozenset({"application/pdf", "application/x-pdf"})
PDF_MAGIC = b"%PDF-"

ERROR_EXAMPLE = {
    "error": {
        "code": "JOB_NOT_FOUND",
        "message": "Job not found: 123e4567-e89b-12d3-a456-426614174000",
        "details": {"jobId": "123e4567-e89b-12d3-a456-426614174000"},
        "timestamp": "2025-05-18T10:31:10+00:00",
    },
    "jobId": "123e4567-e89b-12d3-a456-426614174000",
}


def require_job_id(job_id: str) -> str:
    """Reject job ids that are not UUIDs."""
    try:
        uuid.UUID(job_id)
    except ValueError:
        msg = "jobId must be a valid UUID"
        raise InvalidInputError(msg, details={"jobId": job_id}) from None
    return job_id


def check_pdf(file_name: str, content_type: str | None, data: bytes, max_bytes: int) -> None:
    """Accept only non-empty PDF documents within the upload size limit."""
    if content_type not in PDF_CONTENT_TYPES and PurePath(file_name).suffix.lower() != ".pdf":
        msg = "Only PDF files are accepted"
        raise InvalidInputError(msg, details={"fileName": file_name, "contentType": content_type})
    if not data:
        msg = "Uploaded file is empty"
        raise InvalidInputError(msg, details={"fileName": file_name})
    if len(data) > max_bytes:
        msg = f"File exceeds the maximum upload size of {max_bytes} bytes"
        raise InvalidInputError(msg, details={"fileName": file_name, "size": len(data)})
    if not data.startswith(PDF_MAGIC):
        msg = "Uploaded file is not a valid PDF document"
        raise InvalidInputError(msg, details={"fileName": file_name})


@statements.post(
    "/upload",
    response_model=UploadResponse,
    status_code=201,
    summary="Upload a bank statement PDF",
    description=(
        "Upload a bank statement PDF. The document is stored and a job is created in `uploaded` "
        "status; call `/process/{jobId}` to extract its data.\n\n"
        "**Request:**\n"
        "- Content-Type: multipart/form-data\n"
        "- Form field: `file` (PDF file)\n\n"
        "**Response:**\n"
        "- 201 Created: `{ 'jobId': '<uuid>', 'fileName': '...', 'status': 'uploaded' }`\n"
        "- 400 Bad Request: If the file is not a PDF, is empty or is too large."
    ),
    responses={
        201: {
            "description": "Document stored and job created.",
            "content": {
                "application/json": {
                    "example": {
                        "jobId": "123e4567-e89b-12d3-a456-426614174000",
                        "fileName": "statement.pdf",
                        "status": "uploaded",
                    }
                }
            },
        },
        400: {"description": "Invalid upload."},
    },
)
async def upload_statement(
    file: UploadFile,
    pipeline: StatementPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_app_settings),
) -> UploadResponse:
    """Store an uploaded statement and create its job."""
    file_name = file.filename or ""
    logger.info(f"Received upload request: filename={file_name}")
    if not file_name:
        msg = "A file with a name is required"
        raise InvalidInputError(msg)
    data = await file.read()
    check_pdf(file_name, file.content_type, data, settings.max_upload_bytes)
    job = await pipeline.upload(data, file.content_type or "application/pdf", file_name)
    logger.info(f"Upload accepted: job_id={job.job_id}")
    return UploadResponse(job_id=job.job_id, file_name=job.file_name, status=job.status)


@statements.post(
    "/process/{job_id}",
    response_model=ProcessResponse,
    summary="Process an uploaded statement",
    description=(
        "Run document analysis, AI normalization and validation for an uploaded job. "
        "A job can be processed once; failures leave it in `failed` status with an error message.\n\n"
        "**Response:**\n"
        "- 200 OK: `{ 'jobId', 'status': 'processed', 'accountsDetected' }`\n"
        "- 400 Bad Request: If the job is not in `uploaded` status.\n"
        "- 404 Not Found: If the job does not exist.\n"
        "- 500 Internal Server Error: If a pipeline stage failed."
    ),
    responses={404: {"description": "Job not found.", "content": {"application/json": {"example": ERROR_EXAMPLE}}}},
)
async def process_statement(
    job_id: str,
    pipeline: StatementPipeline = Depends(get_pipeline),
) -> ProcessResponse:
    """Run the processing pipeline for one job."""
    return await pipeline.process(require_job_id(job_id))


@statements.get(
    "/status/{job_id}",
    response_model=JobStatusResponse,
    summary="Get job status",
    description=(
        "Check the status of a job by jobId. Failed jobs carry the reason in `errorMessage`; "
        "processed jobs report `accountsDetected`."
    ),
    responses={404: {"description": "Job not found.", "content": {"application/json": {"example": ERROR_EXAMPLE}}}},
)
async def get_status(
    job_id: str,
    pipeline: StatementPipeline = Depends(get_pipeline),
) -> JobStatusResponse:
    """Get the status of a job."""
    job = pipeline.get_status(require_job_id(job_id))
    return JobStatusResponse.model_validate(job.model_dump())


@statements.get(
    "/result/{job_id}",
    response_model=ResultResponse,
    summary="Get normalized statement data",
    description=(
        "Return the normalized accounts and transactions of a processed job. "
        "Only statement fields are returned; internal analysis data never is.\n\n"
        "**Response:**\n"
        "- 200 OK: `{ 'fileName', 'accounts': [...] }`\n"
        "- 400 Bad Request: If the job is not processed (details carry its status and error).\n"
        "- 404 Not Found: If the job does not exist."
    ),
)
async def get_result(
    job_id: str,
    pipeline: StatementPipeline = Depends(get_pipeline),
) -> ResultResponse:
    """Get the sanitized result of a processed job."""
    return pipeline.get_result(require_job_id(job_id))


@admin.get("/status", summary="Cleanup status", description="Job counts, eligibility and scheduler state.")
async def cleanup_status(cleanup: CleanupScheduler = Depends(get_cleanup)) -> dict[str, Any]:
    """Report the cleanup status."""
    return cleanup.get_status()


@admin.post(
    "/run",
    response_model=CleanupStats,
    summary="Run a cleanup sweep now",
    description="Reclaim expired processed and failed jobs immediately and return the sweep statistics.",
)
async def run_cleanup(cleanup: CleanupScheduler = Depends(get_cleanup)) -> CleanupStats:
    """Run one sweep on demand."""
    return await cleanup.sweep()


@admin.delete(
    "/job/{job_id}",
    summary="Delete one job",
    description="Delete a job and its stored document regardless of status.",
    responses={404: {"description": "Job not found.", "content": {"application/json": {"example": ERROR_EXAMPLE}}}},
)
async def delete_job(job_id: str, cleanup: CleanupScheduler = Depends(get_cleanup)) -> dict[str, Any]:
    """Delete one job and its file."""
    if not await cleanup.cleanup_job_by_id(require_job_id(job_id)):
        raise JobNotFoundError(job_id)
    return {"jobId": job_id, "deleted": True}


@admin.post("/failed-jobs", summary="Delete all failed jobs", description="Delete every failed job and its file.")
async def delete_failed_jobs(cleanup: CleanupScheduler = Depends(get_cleanup)) -> dict[str, int]:
    """Delete all failed jobs."""
    return {"deletedCount": await cleanup.cleanup_failed_jobs()}


@admin.post(
    "/completed-jobs",
    summary="Delete expired processed jobs",
    description="Delete processed jobs older than the completed-job retention, with their files.",
)
async def delete_completed_jobs(cleanup: CleanupScheduler = Depends(get_cleanup)) -> dict[str, int]:
    """Delete expired processed jobs."""
    return {"deletedCount": await cleanup.cleanup_expired_completed_jobs()}


@router.get(
    "/health",
    summary="Health check",
    description="Simple health check endpoint. Returns status ok.",
    response_description="Status ok.",
    responses={200: {"description": "API is healthy.", "content": {"application/json": {"example": {"status": "ok"}}}}},
)
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(statements)
router.include_router(admin)
