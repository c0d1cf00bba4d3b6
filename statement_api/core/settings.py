"""Configuration and environment settings for the Bank Statement API."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Application settings for the Bank Statement API."""

    groq_api_key: str
    groq_model: str = "llama-3.3-70b-versatile"
    groq_temperature: float = 0.1
    groq_top_p: float = 0.8
    groq_max_completion_tokens: int = 8192
    groq_stream: bool = False
    normalizer_agent: str = "groq"
    normalization_timeout_seconds: float = 120.0
    normalization_max_retries: int = 2
    normalization_backoff_seconds: float = 2.0
    normalization_stage_timeout_seconds: float = 420.0

    aws_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_bucket: str = "bank-statements"
    s3_key_prefix: str = "statements/"
    storage_timeout_seconds: float = 60.0
    analysis_timeout_seconds: float = 120.0

    job_store_backend: str = "memory"
    database_url: str = "sqlite:///jobs.db"

    completed_job_retention_seconds: float = 24 * 60 * 60
    failed_job_retention_seconds: float = 7 * 24 * 60 * 60
    cleanup_interval_seconds: float = 60 * 60
    max_jobs_per_cleanup: int = 100
    cleanup_enabled: bool = True
    cleanup_on_shutdown: bool = False

    max_upload_bytes: int = 10 * 1024 * 1024
    log_level: str = "INFO"
    log_file: str | None = "logs/statement_api.log"
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Accept only the standard logging level names."""
        upper = value.upper()
        if upper not in VALID_LOG_LEVELS:
            msg = f"Log level must be one of: {', '.join(VALID_LOG_LEVELS)}"
            raise ValueError(msg)
        return upper

    @field_validator(
        "completed_job_retention_seconds",
        "failed_job_retention_seconds",
        "cleanup_interval_seconds",
        "normalization_timeout_seconds",
        "normalization_stage_timeout_seconds",
    )
    @classmethod
    def validate_positive(cls, value: float) -> float:
        """Durations must be strictly positive."""
        if value <= 0:
            msg = "Duration settings must be greater than zero"
            raise ValueError(msg)
        return value

    @field_validator("max_jobs_per_cleanup")
    @classmethod
    def validate_max_jobs(cls, value: int) -> int:
        """At least one job must be reclaimable per sweep."""
        if value < 1:
            msg = "max_jobs_per_cleanup must be at least 1"
            raise ValueError(msg)
        return value

    @field_validator("job_store_backend")
    @classmethod
    def validate_backend(cls, value: str) -> str:
        """Only the in-memory and SQL job stores exist."""
        lowered = value.lower()
        if lowered not in ("memory", "sql"):
            msg = "job_store_backend must be 'memory' or 'sql'"
            raise ValueError(msg)
        return lowered


def get_settings() -> "Settings":
    """Return an instance of the application settings."""
    return Settings()
