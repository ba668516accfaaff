"""Tests for StageMachine: strict transitions recorded in the ledger."""

from __future__ import annotations

import pytest

from cutover.core.run_ledger import RunLedger
from cutover.core.stage_machine import InvalidTransitionError, StageMachine
from cutover.models.stages import StageKind, StageState

STAGES = {"Source": StageKind.SOURCE, "Build": StageKind.BUILD, "Deploy": StageKind.DEPLOY}


@pytest.fixture
def machine(ledger: RunLedger, run_id: str) -> StageMachine:
    return StageMachine(ledger, run_id, STAGES)


class TestTransitions:
    def test_initial_states(self, machine: StageMachine):
        assert set(machine.states().values()) == {StageState.NOT_STARTED}

    def test_happy_path_recorded(self, machine: StageMachine, ledger: RunLedger, run_id: str):
        machine.transition("Source", StageState.RUNNING)
        entry = machine.transition("Source", StageState.PASSED, output_hash="abc")
        assert machine.state("Source") == StageState.PASSED
        assert entry.stage_kind == "source"
        assert entry.output_hash == "abc"
        assert [e.state_transition for e in ledger.get_run_entries(run_id)] == [
            "not_started->running", "running->passed",
        ]

    def test_failure_records_kind(self, machine: StageMachine):
        machine.transition("Build", StageState.RUNNING)
        entry = machine.transition("Build", StageState.FAILED, failure_kind="build_failed")
        assert entry.failure_kind == "build_failed"

    @pytest.mark.parametrize("target", [StageState.PASSED, StageState.FAILED])
    def test_cannot_finish_without_running(self, machine: StageMachine, target: StageState):
        with pytest.raises(InvalidTransitionError):
            machine.transition("Source", target)

    @pytest.mark.parametrize("terminal", [StageState.PASSED, StageState.FAILED])
    def test_terminal_states_are_final(self, machine: StageMachine, terminal: StageState):
        machine.transition("Source", StageState.RUNNING)
        machine.transition("Source", terminal)
        for target in StageState:
            with pytest.raises(InvalidTransitionError):
                machine.transition("Source", target)

    def test_unknown_stage(self, machine: StageMachine):
        with pytest.raises(InvalidTransitionError, match="Unknown"):
            machine.transition("Test", StageState.RUNNING)

    def test_rejected_transition_not_recorded(self, machine: StageMachine, ledger: RunLedger, run_id: str):
        with pytest.raises(InvalidTransitionError):
            machine.transition("Deploy", StageState.PASSED)
        assert ledger.get_run_entries(run_id) == []


class TestSkipRemaining:
    def test_skips_only_not_started(self, machine: StageMachine, ledger: RunLedger, run_id: str):
        machine.transition("Source", StageState.RUNNING)
        machine.transition("Source", StageState.FAILED)
        skipped = machine.skip_remaining("earlier stage failed")
        assert skipped == ["Build", "Deploy"]
        assert machine.state("Build") == StageState.SKIPPED
        last = ledger.get_run_entries(run_id)[-1]
        assert last.state_transition == "not_started->skipped"
        assert last.detail == {"reason": "earlier stage failed"}

    def test_nothing_to_skip(self, machine: StageMachine):
        for name in STAGES:
            machine.transition(name, StageState.RUNNING)
            machine.transition(name, StageState.PASSED)
        assert machine.skip_remaining("done") == []
