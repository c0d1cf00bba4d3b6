"""Pydantic models for the Bank Statement API.

This module defines the job entity with its status state machine, the normalized bank statement
models (statement, account, transaction) and the response models exposed by the HTTP layer. All
models use snake_case attributes and serialize with camelCase aliases on the wire.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from statement_api.core.utils import utcnow_iso


class JobStatus(StrEnum):
    """Lifecycle states of a processing job."""

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class AccountType(StrEnum):
    """Account types a statement account may declare."""

    SAVINGS = "Savings"
    CURRENT = "Current"


ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.UPLOADED: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.PROCESSED, JobStatus.FAILED}),
    JobStatus.PROCESSED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

def is_allowed_transition(current: JobStatus, new: JobStatus) -> bool:
    """Return whether ``current -> new`` is an edge of the job state machine."""
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


class CamelModel(BaseModel):
    """Base model serializing with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Job(CamelModel):
    """One unit of work per uploaded document."""

    job_id: str
    file_name: str
    storage_key: str
    status: JobStatus = JobStatus.UPLOADED
    accounts_detected: int | None = None
    processed_data: dict[str, Any] | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime


class Transaction(CamelModel):
    """One ledger entry; debit and credit are never both set."""

    date: str
    description: str
    debit: float | None = None
    credit: float | None = None
    balance: float | None = None


class BankAccount(CamelModel):
    """One financial account found in a statement."""

    bank_name: str | None = None
    account_holder_name: str | None = None
    account_number: str | None = None
    account_type: AccountType | None = None
    currency: str | None = None
    statement_start_date: str | None = None
    statement_end_date: str | None = None
    opening_balance: float | None = None
    closing_balance: float | None = None
    transactions: list[Transaction] = Field(default_factory=list)


class BankStatementData(CamelModel):
    """Normalized extraction result for one document."""

    file_name: str
    accounts: list[BankAccount] = Field(default_factory=list)


class UploadResponse(CamelModel):
    """Response returned after a successful upload."""

    job_id: str
    file_name: str
    status: JobStatus = JobStatus.UPLOADED


class ProcessResponse(CamelModel):
    """Response returned after a successful pipeline run."""

    job_id: str
    status: JobStatus = JobStatus.PROCESSED
    accounts_detected: int


class JobStatusResponse(CamelModel):
    """Status view of a job for polling clients."""

    job_id: str
    file_name: str
    status: JobStatus
    accounts_detected: int | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime


class ResultResponse(CamelModel):
    """Sanitized statement data returned to clients."""

    file_name: str | None
    accounts: list[dict[str, Any]]


class ErrorBody(CamelModel):
    """Error payload inside :class:`ErrorResponse`."""

    code: str
    message: str
    details: Any = None
    timestamp: str = Field(default_factory=utcnow_iso)


class ErrorResponse(CamelModel):
    """Uniform error envelope for every failed request."""

    error: ErrorBody
    job_id: str | None = None


def model_field_aliases(model: type[BaseModel]) -> tuple[str, ...]:
    """Return the wire names of a model's fields, in declaration order."""
    return tuple(field.alias or name for name, field in model.model_fields.items())
