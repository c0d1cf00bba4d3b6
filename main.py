"""Main entrypoint and application factory for the Bank Statement API.

This module builds the FastAPI application: it configures logging, wires the job store, storage,
document analysis and normalization agent into the statement pipeline, runs the cleanup scheduler
for the application's lifetime and exposes the Scalar API reference. It also includes the main
entrypoint for running the app with Uvicorn.
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from scalar_fastapi import get_scalar_api_reference

from statement_api.agents import AgentRegistry, BaseAgent
from statement_api.api.errors import register_error_handlers
from statement_api.api.routes import router
from statement_api.core.job_store import JobStore, build_job_store
from statement_api.core.settings import Settings, get_settings
from statement_api.core.utils import get_logger, setup_logging, utcnow
from statement_api.services.base import DocumentAnalyzer, FileStorage
from statement_api.workers.cleanup import CleanupScheduler
from statement_api.workers.pipeline import StatementPipeline

logger = get_logger("statement-api")


def create_app(
    settings: Settings | None = None,
    store: JobStore | None = None,
    storage: FileStorage | None = None,
    analyzer: DocumentAnalyzer | None = None,
    agent: BaseAgent | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """Build the application; collaborators not passed in are built from settings."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_file)

    if store is None:
        store = build_job_store(settings, clock=clock)
    if storage is None or analyzer is None:
        from statement_api.services.s3_file_service import S3FileService
        from statement_api.services.textract_service import TextractService

        storage = storage or S3FileService(settings)
        analyzer = analyzer or TextractService(settings)
    if agent is None:
        agent = AgentRegistry.build(settings)

    pipeline = StatementPipeline(store, storage, analyzer, agent, settings)
    cleanup = CleanupScheduler(store, storage, settings, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Run the cleanup scheduler while the application is up."""
        _ = app  # Silence unused argument warning
        if settings.cleanup_enabled:
            cleanup.start()
        yield
        await cleanup.shutdown(final_sweep=settings.cleanup_on_shutdown)

    app = FastAPI(
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        title="Bank Statement API",
        description="""
    The Bank Statement API extracts accounts and transactions from bank statement PDFs using document analysis and LLM-powered normalization.

    **Endpoints:**
    - `POST /api/statements/upload`: Upload a statement PDF. Returns a `jobId`.
    - `POST /api/statements/process/{{jobId}}`: Run extraction for an uploaded job.
    - `GET /api/statements/status/{{jobId}}`: Check the status of a job.
    - `GET /api/statements/result/{{jobId}}`: Get the normalized statement data.
    - `/api/admin/cleanup/*`: Inspect and trigger retention cleanup.
    - `GET /health`: Health check endpoint.
    - `GET /scalar`: Interactive Scalar OpenAPI documentation.
    """,
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.cleanup = cleanup
    register_error_handlers(app)
    app.include_router(router)

    @app.get("/scalar", include_in_schema=False)
    async def scalar_docs() -> HTMLResponse:
        """Return Scalar API reference."""
        return get_scalar_api_reference(openapi_url=app.openapi_url, title=app.title)

    logger.info(f"Application created (job store: {settings.job_store_backend}, agent: {type(agent).__name__})")
    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.server_host, port=settings.server_port)
