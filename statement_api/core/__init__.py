"""Core package: provides models, settings, errors, validation, the job store and shared utilities."""

from .errors import StatementApiError  # noqa: F401
from .models import Job, JobStatus  # noqa: F401
from .settings import Settings  # noqa: F401
