"""OID Sync — Central Configuration via Pydantic Settings."""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── HLI API ──
    hli_base_url: str = "https://hli.example.com"
    hli_auth_token: str = ""
    hli_timeout_seconds: float = Field(default=30.0, gt=0)
    hli_connect_timeout_seconds: float = Field(default=10.0, gt=0)
    hli_retry_max_attempts: int = Field(default=3, ge=1)
    hli_retry_backoff_ms: int = Field(default=1000, ge=0)

    # ── Batch processing ──
    hli_batch_size: int = Field(default=50, ge=1)
    hli_delay_ms: int = Field(default=500, ge=0)  # pause between chunks
    hli_max_concurrency: int = Field(default=10, ge=1)
    hli_item_timeout_seconds: float = Field(default=120.0, gt=0)

    # ── Database ──
    database_url: str = ""

    # ── Scheduler ──
    scheduler_enabled: bool = True
    scheduler_job_name: str = "oidProcessing"
    scheduler_timezone: str = "UTC"
    scheduler_config_cache_ttl_seconds: int = Field(default=300, ge=0)  # 0 = never expire
    sync_worker_threads: int = Field(default=2, ge=1)

    # ── App ──
    log_level: str = "INFO"

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        return "sqlite:///./oidsync.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
