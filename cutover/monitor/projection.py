"""MonitorProjection: pure read-only view over the run ledger.

Run summaries are derived from ledger entries on every call; the projection
never keeps state of its own.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from cutover.core.run_ledger import LedgerIntegrityError, RunLedger, is_run_entry
from cutover.models.ledger import LedgerEntry
from cutover.models.runs import RunStatus
from cutover.models.stages import StageState


class StageStatus(BaseModel):
    """Point-in-time status of one stage in a run."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: str
    state: StageState = StageState.NOT_STARTED
    entered_at: datetime | None = None
    artifact_refs: list[str] = []
    failure_kind: str = ""
    failure_message: str = ""
    diagnostics: str = ""


class RunSummary(BaseModel):
    """A frozen summary of one run, derived from the ledger."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    status: RunStatus = RunStatus.IN_PROGRESS
    source_ref: str = ""
    function_name: str = ""
    alias_name: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None
    stages: list[StageStatus] = []
    failed_stage: str | None = None
    failure_kind: str = ""
    deployed_version: str | None = None
    previous_version: str | None = None
    chain_valid: bool = True


class MonitorProjection:
    """Builds ``RunSummary`` values from a ``RunLedger``."""

    def __init__(self, ledger: RunLedger) -> None:
        self._ledger = ledger

    def summary(self, run_id: str) -> RunSummary | None:
        """Summarize *run_id*, or None if the ledger has no such run."""
        entries = self._ledger.get_run_entries(run_id)
        if not entries:
            return None
        try:
            chain_valid = self._ledger.verify_chain(run_id)
        except LedgerIntegrityError:
            chain_valid = False
        return self._fold(run_id, entries, chain_valid)

    def history(self, limit: int = 20) -> list[RunSummary]:
        """Most recent runs first."""
        summaries = []
        for run_id in self._ledger.get_all_run_ids()[:limit]:
            summary = self.summary(run_id)
            if summary is not None:
                summaries.append(summary)
        return summaries

    @staticmethod
    def _fold(run_id: str, entries: list[LedgerEntry], chain_valid: bool) -> RunSummary:
        fields: dict = {"run_id": run_id, "chain_valid": chain_valid}
        stages: dict[str, dict] = {}

        for entry in entries:
            if is_run_entry(entry):
                try:
                    status = RunStatus(entry.to_state)
                except ValueError:
                    continue
                if status == RunStatus.IN_PROGRESS:
                    fields["started_at"] = entry.timestamp_utc
                    fields["source_ref"] = entry.detail.get("source_ref", "")
                    fields["function_name"] = entry.detail.get("function_name", "")
                    fields["alias_name"] = entry.detail.get("alias_name", "")
                    for name in entry.detail.get("stages", []):
                        stages.setdefault(name, {"name": name, "kind": ""})
                else:
                    fields["status"] = status
                    fields["finished_at"] = entry.timestamp_utc
                    fields["failure_kind"] = entry.failure_kind
                    failure = entry.detail.get("failure")
                    if failure:
                        fields["failed_stage"] = failure.get("stage")
                continue

            stage = stages.setdefault(entry.stage_id, {"name": entry.stage_id, "kind": ""})
            stage["kind"] = entry.stage_kind
            stage["state"] = StageState(entry.to_state)
            stage["entered_at"] = entry.timestamp_utc
            if entry.artifact_references:
                stage["artifact_refs"] = list(entry.artifact_references)
            failure = entry.detail.get("failure")
            if failure:
                stage["failure_kind"] = failure.get("kind", "")
                stage["failure_message"] = failure.get("message", "")
                stage["diagnostics"] = failure.get("diagnostics", "")
            deploy = entry.detail.get("deploy")
            if deploy:
                fields["deployed_version"] = deploy.get("version")
                fields["previous_version"] = deploy.get("previous_version")

        fields["stages"] = [StageStatus(**s) for s in stages.values()]
        return RunSummary(**fields)
