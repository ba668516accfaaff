"""Process settings: env-driven.

Reads from a .env file and CUTOVER_* environment variables. The core never
reads these directly: callers turn them into a ``PipelineConfig`` with
``PipelineConfig.from_settings`` and pass that in explicitly.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ReleaseSettings(BaseSettings):
    """Process-level settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export CUTOVER_LOG_LEVEL=DEBUG
        export CUTOVER_LEDGER_PATH=/data/ledger.db
        export CUTOVER_BUILD_TIMEOUT_SECONDS=1200
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CUTOVER_",
        env_file_encoding="utf-8",
    )

    environment: str = "development"
    log_level: str = "INFO"

    # Storage paths
    ledger_path: Path = Path(".cutover/ledger.db")
    artifact_store_path: Path = Path(".cutover/artifacts")

    # Bounded waits on external calls
    external_call_timeout_seconds: float = 300.0
    build_timeout_seconds: float = 900.0

    # Where the source-control token lives in the credential vault
    source_secret_name: str = "github-token"
    source_secret_field: str = "github-token"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"
