"""Tests for PipelineOrchestrator: ordering, halting, contracts, records."""

from __future__ import annotations

import threading

import pytest

from cutover.core.alias_manager import AliasManager
from cutover.core.orchestrator import PipelineOrchestrator, new_run_id
from cutover.core.pipeline import Pipeline
from cutover.models.failures import FailureKind
from cutover.models.runs import RunStatus
from cutover.models.stages import StageDefinition, StageKind, StageState
from cutover.providers import InMemoryComputeHost, StaticToolchain, pack_tree
from cutover.stages import (
    BuildStage,
    DeployStage,
    SourceStage,
    StageContext,
    StageExecutor,
    StageExecutors,
    StageResult,
)


class _ChattyBuild(StageExecutor):
    """A build executor that returns an output it never declared."""

    kind = StageKind.BUILD
    failure_kind = FailureKind.BUILD_FAILED

    def execute(self, context: StageContext) -> StageResult:
        return StageResult(outputs={"package": pack_tree({"bootstrap": "x"}), "coverage": b"99%"})


class _SilentBuild(StageExecutor):
    kind = StageKind.BUILD
    failure_kind = FailureKind.BUILD_FAILED

    def execute(self, context: StageContext) -> StageResult:
        return StageResult()


class _SilentDeploy(StageExecutor):
    kind = StageKind.DEPLOY
    failure_kind = FailureKind.DEPLOY_FAILED

    def execute(self, context: StageContext) -> StageResult:
        return StageResult()


def _orchestrator(orchestrator: PipelineOrchestrator, *, build=None, deploy=None) -> PipelineOrchestrator:
    current = orchestrator.executors
    executors = StageExecutors(
        source=current.for_kind(StageKind.SOURCE),
        build=build or current.for_kind(StageKind.BUILD),
        deploy=deploy or current.for_kind(StageKind.DEPLOY),
    )
    return PipelineOrchestrator(
        orchestrator.config, executors, store=orchestrator.artifact_store, ledger=orchestrator.ledger
    )


class TestRunIds:
    def test_format_and_uniqueness(self):
        a, b = new_run_id(), new_run_id()
        assert a.startswith("run-")
        assert a != b


class TestHappyPath:
    def test_all_stages_pass(self, orchestrator: PipelineOrchestrator, pipeline: Pipeline, host: InMemoryComputeHost):
        result = orchestrator.run(pipeline)
        assert result.succeeded
        assert [(o.stage, o.state) for o in result.stages] == [
            ("Source", StageState.PASSED),
            ("Build", StageState.PASSED),
            ("Deploy", StageState.PASSED),
        ]
        assert set(result.artifacts) == {"source", "package"}
        assert result.deploy.version == "1"
        assert result.finished_at >= result.started_at
        assert host.get_alias("hello-fn", "live") == "1"

    def test_artifacts_attributed_to_producers(self, orchestrator: PipelineOrchestrator, pipeline: Pipeline):
        result = orchestrator.run(pipeline)
        assert result.artifacts["source"].producer_stage == "Source"
        assert result.artifacts["package"].producer_stage == "Build"
        assert all(ref.run_id == result.run_id for ref in result.artifacts.values())
        stored = orchestrator.artifact_store.run_artifacts(result.run_id)
        assert sorted(r.name for r in stored) == ["package", "source"]

    def test_ledger_records_every_transition(self, orchestrator: PipelineOrchestrator, pipeline: Pipeline):
        result = orchestrator.run(pipeline, run_id="run-fixed")
        assert result.run_id == "run-fixed"
        entries = orchestrator.get_run_entries("run-fixed")
        assert [(e.stage_id, e.state_transition) for e in entries] == [
            ("run", "not_started->in_progress"),
            ("Source", "not_started->running"),
            ("Source", "running->passed"),
            ("Build", "not_started->running"),
            ("Build", "running->passed"),
            ("Deploy", "not_started->running"),
            ("Deploy", "running->passed"),
            ("run", "in_progress->succeeded"),
        ]
        assert orchestrator.verify_chain("run-fixed") is True
        assert entries[0].detail["source_ref"] == "acme/hello@main"
        assert entries[6].detail["deploy"]["version"] == "1"
        assert entries[4].artifact_references == [result.artifacts["package"].label()]

    def test_last_successful_deploy_recorded(self, orchestrator: PipelineOrchestrator, pipeline: Pipeline):
        result = orchestrator.run(pipeline)
        record = orchestrator.ledger.last_successful_deploy("hello-fn", "live")
        assert record.run_id == result.run_id
        assert record.version == "1"


class TestHalting:
    def test_build_failure_skips_deploy(self, orchestrator, pipeline, host: InMemoryComputeHost):
        failing = _orchestrator(orchestrator, build=BuildStage(StaticToolchain(fail_with="oops")))
        result = failing.run(pipeline)
        assert result.status == RunStatus.FAILED
        assert result.failed_stage == "Build"
        assert result.failure.kind == FailureKind.BUILD_FAILED
        assert [o.state for o in result.stages] == [StageState.PASSED, StageState.FAILED, StageState.SKIPPED]
        assert "package" not in result.artifacts
        assert host.calls == []
        last = failing.get_run_entries(result.run_id)[-1]
        assert last.state_transition == "in_progress->failed"
        assert last.failure_kind == "build_failed"

    def test_undeclared_output_is_contract_violation(self, orchestrator, pipeline, host):
        result = _orchestrator(orchestrator, build=_ChattyBuild()).run(pipeline)
        assert result.failure.kind == FailureKind.STAGE_CONTRACT_VIOLATION
        assert "coverage" in result.failure.message
        assert host.calls == []

    def test_missing_output_is_contract_violation(self, orchestrator, pipeline):
        result = _orchestrator(orchestrator, build=_SilentBuild()).run(pipeline)
        assert result.failure.kind == FailureKind.STAGE_CONTRACT_VIOLATION
        assert result.failed_stage == "Build"

    def test_deploy_without_result_is_contract_violation(self, orchestrator, pipeline):
        result = _orchestrator(orchestrator, deploy=_SilentDeploy()).run(pipeline)
        assert result.failure.kind == FailureKind.STAGE_CONTRACT_VIOLATION
        assert result.failed_stage == "Deploy"


class TestCancellation:
    def test_cancel_before_start(self, orchestrator, pipeline, source_provider):
        cancel = threading.Event()
        cancel.set()
        result = orchestrator.run(pipeline, cancel_event=cancel)
        assert result.status == RunStatus.CANCELLED
        assert result.failure.kind == FailureKind.CANCELLED
        assert all(o.state == StageState.SKIPPED for o in result.stages)
        assert source_provider.fetches == 0

    def test_cancel_between_stages(self, orchestrator, pipeline, host):
        cancel = threading.Event()

        class CancellingBuild(BuildStage):
            def execute(self, context):
                result = super().execute(context)
                cancel.set()
                return result

        result = _orchestrator(orchestrator, build=CancellingBuild(StaticToolchain())).run(
            pipeline, cancel_event=cancel
        )
        assert result.status == RunStatus.CANCELLED
        assert [o.state for o in result.stages] == [StageState.PASSED, StageState.PASSED, StageState.SKIPPED]
        assert result.failure.stage == "Deploy"
        assert host.calls == []


class TestInitialInputs:
    def test_deploy_only_pipeline(self, orchestrator, host):
        deploy_only = Pipeline(
            [StageDefinition(name="Deploy", kind=StageKind.DEPLOY, inputs=("package",))],
            initial_inputs=["package"],
        )
        # Inputs without a producing stage are still wired by name.
        result = orchestrator.run(deploy_only, initial_inputs={"package": pack_tree({"bootstrap": "x"})})
        assert result.succeeded
        assert host.get_alias("hello-fn", "live") == "1"

    def test_missing_initial_input(self, orchestrator):
        deploy_only = Pipeline(
            [StageDefinition(name="Deploy", kind=StageKind.DEPLOY, inputs=("package",))],
            initial_inputs=["package"],
        )
        with pytest.raises(ValueError):
            orchestrator.run(deploy_only)

    def test_unstorable_run_id_rejected_before_recording(self, orchestrator, pipeline, ledger):
        with pytest.raises(ValueError, match="Invalid run id"):
            orchestrator.run(pipeline, run_id="run 1/../x")
        assert ledger.get_all_run_ids() == []


class TestWiring:
    def test_with_providers_builds_standard_executors(self, orchestrator):
        assert isinstance(orchestrator.executors.for_kind(StageKind.SOURCE), SourceStage)
        assert isinstance(orchestrator.executors.for_kind(StageKind.BUILD), BuildStage)
        assert isinstance(orchestrator.executors.for_kind(StageKind.DEPLOY), DeployStage)

    def test_default_store_and_ledger_from_config(self, config, source_provider, host, vault, pipeline):
        orch = PipelineOrchestrator(
            config,
            StageExecutors(
                source=SourceStage(source_provider, vault),
                build=BuildStage(StaticToolchain()),
                deploy=DeployStage(AliasManager(host)),
            ),
        )
        result = orch.run(pipeline)
        assert result.succeeded
        assert config.ledger_db_path.exists()
        assert (config.artifact_store_path / "runs" / result.run_id).is_dir()
