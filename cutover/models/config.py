"""Pipeline configuration and source references."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from cutover.config import ReleaseSettings


class SourceRef(BaseModel):
    """Identifies which source snapshot a run builds."""

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    branch: str = "main"
    revision: str | None = None  # pin a commit; None means branch head

    def __str__(self) -> str:
        ref = f"{self.owner}/{self.repo}@{self.branch}"
        return f"{ref}#{self.revision}" if self.revision else ref


class PipelineConfig(BaseModel):
    """Immutable configuration handed to the orchestrator at construction.

    Recognized options mirror the deployment stack parameters:
    ``source_owner``, ``source_repo``, ``branch`` (default ``"main"``),
    ``function_name`` and ``alias_name`` (default ``"live"``).
    """

    model_config = ConfigDict(frozen=True)

    source_owner: str
    source_repo: str
    branch: str = "main"
    function_name: str
    alias_name: str = "live"

    artifact_store_path: Path = Path(".cutover/artifacts")
    ledger_db_path: Path = Path(".cutover/ledger.db")

    external_call_timeout_seconds: float = 300.0
    build_timeout_seconds: float = 900.0

    source_secret_name: str = "github-token"
    source_secret_field: str = "github-token"

    def source_ref(self, revision: str | None = None) -> SourceRef:
        """The source reference this configuration points at."""
        return SourceRef(
            owner=self.source_owner,
            repo=self.source_repo,
            branch=self.branch,
            revision=revision,
        )

    @classmethod
    def from_settings(cls, settings: ReleaseSettings, **fields: Any) -> PipelineConfig:
        """Build a config whose paths and timeouts come from process settings."""
        defaults: dict[str, Any] = {
            "artifact_store_path": settings.artifact_store_path,
            "ledger_db_path": settings.ledger_path,
            "external_call_timeout_seconds": settings.external_call_timeout_seconds,
            "build_timeout_seconds": settings.build_timeout_seconds,
            "source_secret_name": settings.source_secret_name,
            "source_secret_field": settings.source_secret_field,
        }
        defaults.update(fields)
        return cls(**defaults)
