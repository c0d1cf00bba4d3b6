"""FastAPI dependencies for DI (settings, pipeline, cleanup scheduler).

The application factory builds every collaborator once and keeps it on ``app.state``; these helpers
hand them to the endpoints so tests can swap in fakes through the factory.
"""

from fastapi import Request

from statement_api.core.settings import Settings
from statement_api.workers.cleanup import CleanupScheduler
from statement_api.workers.pipeline import StatementPipeline


def get_app_settings(request: Request) -> Settings:
    """Provide the application settings."""
    return request.app.state.settings


def get_pipeline(request: Request) -> StatementPipeline:
    """Provide the statement pipeline."""
    return request.app.state.pipeline


def get_cleanup(request: Request) -> CleanupScheduler:
    """Provide the cleanup scheduler."""
    return request.app.state.cleanup
