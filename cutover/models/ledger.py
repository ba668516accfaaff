"""Run ledger entry model (append-only, hash-chained).

The ledger is the persisted run history:
- Append-only (no UPDATE, no DELETE)
- Hash-chained per run (each entry links to the previous via SHA-256)
- One entry per stage state transition, plus run-level entries
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# stage_id used for run-level lifecycle entries
RUN_STAGE_ID = "run"


class LedgerEntry(BaseModel):
    """A single entry in the run ledger."""

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    run_id: str
    stage_id: str
    stage_kind: str = ""  # "" for run-level entries
    state_transition: str  # "from_state->to_state", e.g. "not_started->running"
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    input_hash: str = ""
    output_hash: str = ""
    artifact_references: list[str] = []  # "name@sha256:<hex>"
    failure_kind: str = ""
    detail: dict[str, Any] = {}
    pipeline_version: str = "0.1.0"
    previous_entry_hash: str = ""
    entry_hash: str = ""  # computed by the ledger, seals this entry

    @property
    def to_state(self) -> str:
        return self.state_transition.split("->", 1)[-1]


class DeployRecord(BaseModel):
    """The outcome of a successful deploy, as recorded in the ledger."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    function_name: str
    alias_name: str
    version: str
    previous_version: str | None = None
    code_sha256: str = ""
    deployed_at: datetime
