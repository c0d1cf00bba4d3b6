"""Rendering of service errors as the uniform JSON error envelope."""

from collections.abc import Mapping
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from statement_api.core.errors import StatementApiError
from statement_api.core.models import ErrorBody, ErrorResponse
from statement_api.core.utils import get_logger

logger = get_logger("statement-api.api")

REDACTED = "[REDACTED]"
FINANCIAL_FIELDS = frozenset(
    {
        "accountNumber",
        "accountHolderName",
        "openingBalance",
        "closingBalance",
        "balance",
        "debit",
        "credit",
        "amount",
    }
)


def redact(value: Any) -> Any:
    """Replace financial fields at any depth of a details payload."""
    if isinstance(value, Mapping):
        return {key: REDACTED if key in FINANCIAL_FIELDS else redact(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [redact(item) for item in value]
    return value


def error_response(exc: StatementApiError) -> JSONResponse:
    """Build the JSON response for a service error."""
    details = redact(exc.details) if exc.details else None
    job_id = exc.details.get("jobId") if isinstance(exc.details, Mapping) else None
    body = ErrorResponse(
        error=ErrorBody(code=exc.code, message=exc.message, details=details),
        job_id=job_id,
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(by_alias=True, exclude_none=True))


async def statement_error_handler(request: Request, exc: StatementApiError) -> JSONResponse:
    """Log and render a :class:`StatementApiError`."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return error_response(exc)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StatementApiError, statement_error_handler)
