"""Artifact references handed between stages (immutable once written)."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class ArtifactRef(BaseModel):
    """A reference to an artifact written by one stage of one run.

    ``content_address`` is ``"sha256:<hex>"`` of the artifact bytes.
    ``run_id`` and ``producer_stage`` pin the reference to the exact
    producer; nothing resolves a "latest" artifact across runs.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    name: str
    content_address: str
    producer_stage: str = ""
    size_bytes: int = 0
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def digest(self) -> str:
        return self.content_address.removeprefix("sha256:")

    def label(self) -> str:
        """Compact ``name@sha256:<hex>`` form used in the run ledger."""
        return f"{self.name}@{self.content_address}"
