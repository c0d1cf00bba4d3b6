"""API package: provides FastAPI dependencies, error handlers and route definitions for the application."""

from .errors import register_error_handlers  # noqa: F401
from .routes import router  # noqa: F401
