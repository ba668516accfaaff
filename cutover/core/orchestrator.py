"""Pipeline orchestrator: sequences stages and records each run.

The orchestrator wires the run ledger, artifact store, stage machine and
stage executors into a single run loop:

- stages execute strictly in declared order, one at a time;
- each stage sees exactly the artifacts its declared producers wrote in the
  same run;
- declared outputs are checked and durably stored before the next stage;
- the first failure halts the run, later stages are recorded as skipped;
- a cancellation signal is honoured between stages, never mid-stage.

There is no retry at this level.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any

from cutover.core.alias_manager import AliasManager
from cutover.core.artifact_store import (
    ArtifactImmutableError,
    ArtifactIntegrityError,
    ContentAddressedStore,
    is_valid_name,
)
from cutover.core.pipeline import Pipeline
from cutover.core.run_ledger import RunLedger
from cutover.core.stage_machine import StageMachine
from cutover.models.artifacts import ArtifactRef
from cutover.models.config import PipelineConfig, SourceRef
from cutover.models.failures import FailureKind, StageFailure
from cutover.models.ledger import RUN_STAGE_ID, LedgerEntry
from cutover.models.runs import (
    DeployResult,
    PipelineRunResult,
    RunStatus,
    StageOutcome,
)
from cutover.models.stages import StageDefinition, StageKind, StageState
from cutover.providers.base import ComputeHost, CredentialVault, SourceProvider, Toolchain
from cutover.stages import (
    BuildStage,
    DeployStage,
    SourceStage,
    StageContext,
    StageExecutors,
    StageResult,
)

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"run-{ts}-{uuid.uuid4().hex[:6]}"


class PipelineOrchestrator:
    """Runs pipelines against an immutable configuration.

    One orchestrator may serve several concurrent runs; a run keeps all of
    its mutable state local to ``run()``.

    Parameters
    ----------
    config:
        Pipeline configuration (function, alias, source coordinates, paths).
    executors:
        The executor for each stage kind.
    store:
        Artifact store. Defaults to one at ``config.artifact_store_path``.
    ledger:
        Run ledger. Defaults to one at ``config.ledger_db_path``.
    """

    def __init__(
        self,
        config: PipelineConfig,
        executors: StageExecutors,
        *,
        store: ContentAddressedStore | None = None,
        ledger: RunLedger | None = None,
    ) -> None:
        self.config = config
        self.executors = executors
        self.artifact_store = store or ContentAddressedStore(config.artifact_store_path)
        self.ledger = ledger or RunLedger(config.ledger_db_path)

    @classmethod
    def with_providers(
        cls,
        config: PipelineConfig,
        *,
        source: SourceProvider,
        toolchain: Toolchain,
        host: ComputeHost,
        vault: CredentialVault | None = None,
        store: ContentAddressedStore | None = None,
        ledger: RunLedger | None = None,
    ) -> PipelineOrchestrator:
        """Wire the standard executors around the given collaborators."""
        executors = StageExecutors(
            source=SourceStage(source, vault),
            build=BuildStage(toolchain),
            deploy=DeployStage(AliasManager(host)),
        )
        return cls(config, executors, store=store, ledger=ledger)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(
        self,
        pipeline: Pipeline,
        source_ref: SourceRef | None = None,
        *,
        cancel_event: threading.Event | None = None,
        initial_inputs: dict[str, bytes] | None = None,
        run_id: str | None = None,
    ) -> PipelineRunResult:
        """Execute *pipeline* for *source_ref* and return the run result."""
        source_ref = source_ref or self.config.source_ref()
        run_id = run_id or new_run_id()
        if not is_valid_name(run_id):
            raise ValueError(f"Invalid run id: {run_id!r}")
        started_at = datetime.now(timezone.utc)
        supplied = initial_inputs or {}
        missing = sorted(set(pipeline.initial_inputs) - set(supplied))
        if missing:
            raise ValueError(f"Initial inputs not supplied: {missing}")

        self._record_run(run_id, RunStatus.IN_PROGRESS, {
            "source_ref": str(source_ref),
            "function_name": self.config.function_name,
            "alias_name": self.config.alias_name,
            "stages": [s.name for s in pipeline],
        }, from_state="not_started")
        logger.info("Run %s started for %s", run_id, source_ref)

        machine = StageMachine(self.ledger, run_id, {s.name: s.kind for s in pipeline})
        artifacts: dict[str, ArtifactRef] = {}
        outcomes: list[StageOutcome] = []
        deploy: DeployResult | None = None
        failure: StageFailure | None = None
        status = RunStatus.SUCCEEDED

        for name in sorted(pipeline.initial_inputs):
            artifacts[name] = self.artifact_store.put(run_id, name, supplied[name])

        for stage in pipeline:
            if cancel_event is not None and cancel_event.is_set():
                failure = StageFailure(
                    kind=FailureKind.CANCELLED,
                    stage=stage.name,
                    message="Run cancelled before stage started",
                )
                status = RunStatus.CANCELLED
                logger.warning("Run %s cancelled before %s", run_id, stage.name)
                break

            inputs, failure = self._resolve_inputs(run_id, pipeline, stage, artifacts)
            if failure is None:
                machine.transition(
                    stage.name, StageState.RUNNING,
                    artifact_references=[ref.label() for ref in inputs.values()],
                )
                result = self.executors.for_kind(stage.kind).run_stage(
                    StageContext(
                        run_id=run_id,
                        stage=stage,
                        source_ref=source_ref,
                        config=self.config,
                        grant=stage.permissions,
                        store=self.artifact_store,
                        inputs=inputs,
                    )
                )
                failure = result.failure or self._check_contract(stage, result)
                outputs: dict[str, ArtifactRef] = {}
                if failure is None:
                    outputs, failure = self._store_outputs(run_id, stage, result)
            else:
                # Inputs could not be wired; the stage never starts.
                machine.transition(stage.name, StageState.RUNNING)
                result = StageResult()
                outputs = {}

            if failure is not None:
                machine.transition(
                    stage.name, StageState.FAILED,
                    input_hash=result.input_hash,
                    failure_kind=failure.kind.value,
                    detail={"failure": failure.model_dump(mode="json")},
                )
                outcomes.append(StageOutcome(stage=stage.name, state=StageState.FAILED, failure=failure))
                status = RunStatus.FAILED
                logger.error("Run %s halted: %s", run_id, failure.describe())
                break

            detail: dict[str, Any] = {}
            if result.deploy is not None:
                deploy = result.deploy
                detail["deploy"] = deploy.model_dump(mode="json")
            machine.transition(
                stage.name, StageState.PASSED,
                input_hash=result.input_hash,
                output_hash=result.output_hash,
                artifact_references=[ref.label() for ref in outputs.values()],
                detail=detail,
            )
            artifacts.update(outputs)
            outcomes.append(StageOutcome(stage=stage.name, state=StageState.PASSED, outputs=outputs))

        skipped = machine.skip_remaining(
            "run cancelled" if status == RunStatus.CANCELLED else "earlier stage failed"
        )
        outcomes.extend(StageOutcome(stage=n, state=StageState.SKIPPED) for n in skipped)

        run_detail: dict[str, Any] = {}
        if failure is not None:
            run_detail["failure"] = failure.model_dump(mode="json")
        if deploy is not None:
            run_detail["deploy"] = deploy.model_dump(mode="json")
        self._record_run(run_id, status, run_detail)
        logger.info("Run %s finished: %s", run_id, status.value)

        return PipelineRunResult(
            run_id=run_id,
            status=status,
            stages=outcomes,
            artifacts=artifacts,
            failure=failure,
            deploy=deploy,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

    # ------------------------------------------------------------------
    # Artifact wiring
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_inputs(
        run_id: str,
        pipeline: Pipeline,
        stage: StageDefinition,
        artifacts: dict[str, ArtifactRef],
    ) -> tuple[dict[str, ArtifactRef], StageFailure | None]:
        """Pick the exact refs this run's declared producers wrote."""
        inputs: dict[str, ArtifactRef] = {}
        for name in stage.inputs:
            ref = artifacts.get(name)
            producer = pipeline.producer_of(name) or ""
            if ref is None or ref.run_id != run_id or ref.producer_stage != producer:
                return {}, StageFailure(
                    kind=FailureKind.STAGE_CONTRACT_VIOLATION,
                    stage=stage.name,
                    message=f"Input {name!r} was not produced by {producer or 'the run inputs'} in run {run_id}",
                )
            inputs[name] = ref
        return inputs, None

    @staticmethod
    def _check_contract(stage: StageDefinition, result: StageResult) -> StageFailure | None:
        """Every declared output present, nothing undeclared, deploy reports."""
        declared = set(stage.outputs)
        produced = set(result.outputs)
        problems: list[str] = []
        if declared - produced:
            problems.append(f"missing declared outputs {sorted(declared - produced)}")
        if produced - declared:
            problems.append(f"undeclared outputs {sorted(produced - declared)}")
        if stage.kind == StageKind.DEPLOY and result.deploy is None:
            problems.append("deploy stage reported no deploy result")
        if not problems:
            return None
        return StageFailure(
            kind=FailureKind.STAGE_CONTRACT_VIOLATION,
            stage=stage.name,
            message="; ".join(problems),
        )

    def _store_outputs(
        self, run_id: str, stage: StageDefinition, result: StageResult
    ) -> tuple[dict[str, ArtifactRef], StageFailure | None]:
        refs: dict[str, ArtifactRef] = {}
        for name in stage.outputs:
            try:
                refs[name] = self.artifact_store.put(
                    run_id, name, result.outputs[name], producer_stage=stage.name
                )
            except (OSError, ArtifactImmutableError, ArtifactIntegrityError) as exc:
                logger.error("Could not record %s for run %s: %s", name, run_id, exc)
                return refs, StageFailure(
                    kind=FailureKind.STAGE_CONTRACT_VIOLATION,
                    stage=stage.name,
                    message=f"Output {name!r} could not be recorded: {exc}",
                )
        return refs, None

    # ------------------------------------------------------------------
    # Run records
    # ------------------------------------------------------------------

    def _record_run(
        self,
        run_id: str,
        status: RunStatus,
        detail: dict[str, Any],
        *,
        from_state: str = RunStatus.IN_PROGRESS.value,
    ) -> LedgerEntry:
        failure = detail.get("failure", {})
        return self.ledger.append(
            LedgerEntry(
                run_id=run_id,
                stage_id=RUN_STAGE_ID,
                state_transition=f"{from_state}->{status.value}",
                failure_kind=failure.get("kind", ""),
                detail=detail,
            )
        )

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_run_entries(self, run_id: str) -> list[LedgerEntry]:
        return self.ledger.get_run_entries(run_id)

    def verify_chain(self, run_id: str) -> bool:
        return self.ledger.verify_chain(run_id)
