"""Runtime settings for litestar-stepflow.

Every value can be overridden with a ``STEPFLOW_``-prefixed environment variable or
a ``.env`` file, e.g. ``STEPFLOW_POLL_INTERVAL_SECONDS=1``.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["StepflowSettings"]


class StepflowSettings(BaseSettings):
    """Settings for the engine, the background processor and the stores."""

    model_config = SettingsConfigDict(env_prefix="STEPFLOW_", env_file=".env", extra="ignore")

    log_level: str = Field(default="INFO", description="Level for the litestar_stepflow logger.")
    database_url: str | None = Field(
        default=None,
        description=(
            "SQLAlchemy async URL, e.g. sqlite+aiosqlite:///stepflow.db. When set and no store is "
            "passed to the plugin, runs are persisted there; otherwise they are kept in memory."
        ),
    )

    poll_interval_seconds: float = Field(default=5.0, gt=0, description="Background processor poll interval.")
    poll_page_size: int = Field(default=10, ge=1, description="Maximum runs picked up per poll.")
    processor_concurrency: int = Field(default=3, ge=1, description="Runs executed concurrently per batch.")

    llm_max_retries: int = Field(
        default=2,
        ge=0,
        description="Extra attempts after structured output fails to parse or validate.",
    )
    llm_initial_delay_ms: float = Field(default=200, ge=0, description="First structured output backoff.")

    retry_max_retries: int = Field(default=3, ge=0, description="Retries of transient client errors.")
    retry_base_delay_ms: float = Field(default=1000, ge=0)
    retry_max_delay_ms: float = Field(default=30000, ge=0)
    retry_jitter_factor: float = Field(default=0.1, ge=0, le=1)

    run_max_retries: int = Field(default=3, ge=0, description="Default retry ceiling for new runs.")
