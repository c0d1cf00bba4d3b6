"""Exception hierarchy for the Bank Statement API.

Every error the service raises derives from :class:`StatementApiError`, which carries a stable
machine-readable ``code`` and the HTTP ``status_code`` the API layer renders it with. Collaborator
errors (storage, document analysis, AI normalization) are separate branches so the pipeline can
wrap them into the stage failure they caused.
"""

from typing import Any


class StatementApiError(Exception):
    """Base exception for all bank statement API errors."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize the exception with a message and optional details."""
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInputError(StatementApiError):
    """Raised when a caller-supplied identifier or parameter is missing or malformed."""

    code = "INVALID_INPUT"
    status_code = 400


class ConfigurationError(StatementApiError):
    """Raised when configuration is invalid."""

    code = "CONFIGURATION_ERROR"


class JobNotFoundError(StatementApiError):
    """Raised when a job id does not exist in the store."""

    code = "JOB_NOT_FOUND"
    status_code = 404

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}", details={"jobId": job_id})
        self.job_id = job_id


class InvalidJobStatusError(StatementApiError):
    """Raised when an operation needs the job in a different status."""

    code = "INVALID_JOB_STATUS"
    status_code = 400


class InvalidTransitionError(StatementApiError):
    """Raised when a status change is not an edge of the job state machine."""

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, job_id: str, current: str, attempted: str, allowed: list[str]) -> None:
        allowed_text = ", ".join(allowed) or "none (terminal state)"
        super().__init__(
            f"Invalid status transition from {current} to {attempted}. Allowed transitions: {allowed_text}",
            details={"jobId": job_id, "currentStatus": current, "attemptedStatus": attempted},
        )
        self.current = current
        self.attempted = attempted


class JobNotProcessedError(StatementApiError):
    """Raised when results are requested for a job that has not finished successfully."""

    code = "JOB_NOT_PROCESSED"
    status_code = 400


class MissingProcessedDataError(StatementApiError):
    """Raised when a processed job has no stored result."""

    code = "MISSING_PROCESSED_DATA"
    status_code = 500


class PipelineStageError(StatementApiError):
    """A pipeline stage failed; the job has already been marked failed."""

    stage = "pipeline"


class RetrievalFailedError(PipelineStageError):
    """The document could not be fetched from storage."""

    code = "RETRIEVAL_FAILED"
    stage = "retrieve"


class AnalysisFailedError(PipelineStageError):
    """The document analysis collaborator rejected or failed the document."""

    code = "ANALYSIS_FAILED"
    stage = "analyze"


class NormalizationFailedError(PipelineStageError):
    """The AI normalization collaborator did not produce usable output."""

    code = "NORMALIZATION_FAILED"
    stage = "normalize"


class ValidationFailedError(PipelineStageError):
    """Normalized output broke the statement schema or its invariants."""

    code = "VALIDATION_FAILED"
    stage = "validate"


# --- Collaborator errors ---


class StorageError(StatementApiError):
    """Raised when the file storage backend fails."""

    code = "STORAGE_ERROR"


class StorageNotFoundError(StorageError):
    """Raised when a storage key does not exist."""

    code = "STORAGE_NOT_FOUND"
    status_code = 404


class DocumentAnalysisError(StatementApiError):
    """Raised when document analysis fails."""

    code = "DOCUMENT_ANALYSIS_ERROR"


class UnsupportedFormatError(DocumentAnalysisError):
    """The analysis engine cannot read this document format."""

    code = "UNSUPPORTED_FORMAT"


class DocumentTooLargeError(DocumentAnalysisError):
    """The document exceeds the analysis engine's limits."""

    code = "DOCUMENT_TOO_LARGE"


class ThrottledError(DocumentAnalysisError):
    """The analysis engine is throttling requests."""

    code = "THROTTLED"


class TransientAnalysisError(DocumentAnalysisError):
    """An analysis failure that may succeed on a later attempt."""

    code = "TRANSIENT_ANALYSIS_ERROR"


class NormalizationError(StatementApiError):
    """Raised when the AI normalization backend fails; ``retryable`` drives the retry policy."""

    code = "NORMALIZATION_ERROR"
    retryable = False


class NormalizationTimeoutError(NormalizationError):
    """The AI call exceeded its wall-clock budget."""

    code = "NORMALIZATION_TIMEOUT"
    retryable = True


class MalformedOutputError(NormalizationError):
    """The AI returned text that does not parse as JSON."""

    code = "MALFORMED_OUTPUT"
    retryable = True


class SchemaInvalidError(NormalizationError):
    """The AI returned JSON of the wrong shape."""

    code = "SCHEMA_INVALID"
    retryable = True


class TransientNormalizationError(NormalizationError):
    """A connection or server-side failure of the AI backend."""

    code = "NORMALIZATION_TRANSIENT"
    retryable = True


class AuthFailedError(NormalizationError):
    """The AI backend rejected the credentials."""

    code = "AUTH_FAILED"


class QuotaExceededError(NormalizationError):
    """The AI backend quota or rate limit is exhausted."""

    code = "QUOTA_EXCEEDED"
