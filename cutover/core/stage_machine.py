"""Deterministic stage state machine for one run.

Enforces valid transitions only (VALID_TRANSITIONS table) and records every
transition in the run ledger.
"""

from __future__ import annotations

from typing import Any

from cutover.core.run_ledger import RunLedger
from cutover.models.ledger import LedgerEntry
from cutover.models.stages import VALID_TRANSITIONS, StageKind, StageState


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class StageMachine:
    """Tracks stage states of a single run.

    Parameters
    ----------
    ledger:
        The run ledger to record transitions into.
    run_id:
        The run whose stages this machine tracks.
    stages:
        ``stage name -> kind`` for every stage in the pipeline.
    """

    def __init__(
        self,
        ledger: RunLedger,
        run_id: str,
        stages: dict[str, StageKind],
    ) -> None:
        self._ledger = ledger
        self._run_id = run_id
        self._kinds = dict(stages)
        self._states: dict[str, StageState] = {
            name: StageState.NOT_STARTED for name in stages
        }

    def state(self, stage: str) -> StageState:
        return self._states[stage]

    def states(self) -> dict[str, StageState]:
        return dict(self._states)

    def transition(
        self,
        stage: str,
        target_state: StageState,
        *,
        input_hash: str = "",
        output_hash: str = "",
        artifact_references: list[str] | None = None,
        failure_kind: str = "",
        detail: dict[str, Any] | None = None,
    ) -> LedgerEntry:
        """Move *stage* to *target_state* and append the ledger entry."""
        if stage not in self._states:
            raise InvalidTransitionError(f"Unknown stage {stage!r}")

        current = self._states[stage]
        allowed = VALID_TRANSITIONS.get(current, set())
        if target_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {stage} from {current.value} to "
                f"{target_state.value}. Allowed: {sorted(s.value for s in allowed)}"
            )

        entry = LedgerEntry(
            run_id=self._run_id,
            stage_id=stage,
            stage_kind=self._kinds[stage].value,
            state_transition=f"{current.value}->{target_state.value}",
            input_hash=input_hash,
            output_hash=output_hash,
            artifact_references=artifact_references or [],
            failure_kind=failure_kind,
            detail=detail or {},
        )
        sealed = self._ledger.append(entry)
        self._states[stage] = target_state
        return sealed

    def skip_remaining(self, reason: str) -> list[str]:
        """Mark every not-yet-started stage SKIPPED; return their names."""
        skipped = [
            name for name, state in self._states.items()
            if state == StageState.NOT_STARTED
        ]
        for name in skipped:
            self.transition(name, StageState.SKIPPED, detail={"reason": reason})
        return skipped
