"""Adversarial: rewriting ledger history must be detectable."""

from __future__ import annotations

import pytest

from cutover.core.orchestrator import PipelineOrchestrator
from cutover.core.run_ledger import LedgerIntegrityError, RunLedger
from cutover.monitor import MonitorProjection


@pytest.fixture
def recorded_run(orchestrator: PipelineOrchestrator, pipeline) -> str:
    return orchestrator.run(pipeline).run_id


def _execute(ledger: RunLedger, sql: str, *params) -> None:
    with ledger._connect() as conn:
        conn.execute(sql, params)


class TestLedgerTampering:
    def test_untouched_chain_verifies(self, ledger: RunLedger, recorded_run: str):
        assert ledger.verify_chain(recorded_run) is True

    def test_rewritten_deploy_version_detected(self, ledger: RunLedger, recorded_run: str):
        _execute(
            ledger,
            "UPDATE ledger_entries SET detail = REPLACE(detail, '\"version\": \"1\"', '\"version\": \"9\"') "
            "WHERE run_id = ? AND stage_id = 'Deploy'",
            recorded_run,
        )
        with pytest.raises(LedgerIntegrityError):
            ledger.verify_chain(recorded_run)

    def test_flipped_outcome_detected(self, ledger: RunLedger, recorded_run: str):
        _execute(
            ledger,
            "UPDATE ledger_entries SET state_transition = 'in_progress->failed' "
            "WHERE run_id = ? AND stage_id = 'run' AND state_transition = 'in_progress->succeeded'",
            recorded_run,
        )
        with pytest.raises(LedgerIntegrityError, match="Tampered"):
            ledger.verify_chain(recorded_run)

    def test_deleted_entry_detected(self, ledger: RunLedger, recorded_run: str):
        _execute(
            ledger,
            "DELETE FROM ledger_entries WHERE run_id = ? AND stage_id = 'Build' AND state_transition = 'running->passed'",
            recorded_run,
        )
        with pytest.raises(LedgerIntegrityError, match="Chain broken"):
            ledger.verify_chain(recorded_run)

    def test_resealed_entry_breaks_successor(self, ledger: RunLedger, recorded_run: str):
        """Recomputing one entry's hash still breaks the link from the next entry."""
        from cutover.core.hasher import compute_entry_hash

        entries = ledger.get_run_entries(recorded_run)
        target = entries[2]
        forged = target.model_copy(update={"output_hash": "forged"})
        new_hash = compute_entry_hash(forged.model_dump(mode="json"))
        _execute(
            ledger,
            "UPDATE ledger_entries SET output_hash = 'forged', entry_hash = ? WHERE entry_id = ?",
            new_hash,
            target.entry_id,
        )
        with pytest.raises(LedgerIntegrityError, match="Chain broken"):
            ledger.verify_chain(recorded_run)

    def test_tampering_in_one_run_leaves_others_valid(
        self, orchestrator: PipelineOrchestrator, pipeline, ledger: RunLedger, commit
    ):
        first = orchestrator.run(pipeline).run_id
        commit("f2")
        second = orchestrator.run(pipeline).run_id
        _execute(ledger, "UPDATE ledger_entries SET input_hash = 'x' WHERE run_id = ? AND stage_id = 'Source'", first)
        with pytest.raises(LedgerIntegrityError):
            ledger.verify_chain(first)
        assert ledger.verify_chain(second) is True
        assert MonitorProjection(ledger).summary(first).chain_valid is False
        assert MonitorProjection(ledger).summary(second).chain_valid is True
