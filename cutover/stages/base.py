"""Abstract stage executor with an enforced lifecycle.

Every concrete executor implements only ``execute()``. The ``run_stage()``
wrapper is **not overridable**; it enforces the canonical ordering

    compute_input_hash -> execute -> classify failure -> compute_output_hash

and guarantees a stage reports failures as a typed ``StageFailure`` value,
never as an uncaught exception.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, ClassVar, final

from cutover.core.artifact_store import ContentAddressedStore
from cutover.core.hasher import compute_input_hash, compute_output_hash, sha256_hex
from cutover.core.scoped_host import PermissionDeniedError, require
from cutover.core.timeouts import ExternalCallTimeout
from cutover.models.artifacts import ArtifactRef
from cutover.models.config import PipelineConfig, SourceRef
from cutover.models.failures import CutoverStep, FailureKind, StageFailure
from cutover.models.permissions import Permission, PermissionSet
from cutover.models.runs import DeployResult
from cutover.models.stages import StageDefinition, StageKind

logger = logging.getLogger(__name__)


class StageFailureError(RuntimeError):
    """Raised inside ``execute()`` to report a typed stage failure."""

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        *,
        step: CutoverStep | None = None,
        diagnostics: str = "",
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.step = step
        self.diagnostics = diagnostics
        self.detail = detail or {}


class StageContext:
    """Everything one stage execution may see.

    Input artifacts are read through ``read()``, which requires the
    ``artifact:Read`` permission and the exact refs the orchestrator handed in.
    """

    def __init__(
        self,
        *,
        run_id: str,
        stage: StageDefinition,
        source_ref: SourceRef,
        config: PipelineConfig,
        grant: PermissionSet,
        store: ContentAddressedStore,
        inputs: dict[str, ArtifactRef],
    ) -> None:
        self.run_id = run_id
        self.stage = stage
        self.source_ref = source_ref
        self.config = config
        self.grant = grant
        self.inputs = dict(inputs)
        self._store = store

    def read(self, name: str) -> bytes:
        require(self.grant, Permission.ARTIFACT_READ)
        return self._store.get(self.inputs[name])


class StageResult:
    """Outputs of one stage execution, or the failure it reported."""

    def __init__(
        self,
        *,
        outputs: dict[str, bytes] | None = None,
        deploy: DeployResult | None = None,
        failure: StageFailure | None = None,
    ) -> None:
        self.outputs = outputs or {}
        self.deploy = deploy
        self.failure = failure
        self.input_hash = ""
        self.output_hash = ""

    @property
    def ok(self) -> bool:
        return self.failure is None


class StageExecutor(abc.ABC):
    """Abstract base for Source, Build and Deploy executors.

    Subclasses set ``kind`` and ``failure_kind`` (the kind reported for an
    unexpected fault) and implement ``execute()``. They must not override
    ``run_stage()``.
    """

    kind: ClassVar[StageKind]
    failure_kind: ClassVar[FailureKind]

    @abc.abstractmethod
    def execute(self, context: StageContext) -> StageResult:
        """Run the stage's work. Raise ``StageFailureError`` to fail."""
        ...

    @final
    def run_stage(self, context: StageContext) -> StageResult:
        """Execute the full stage lifecycle.  **Do not override.**"""
        name = context.stage.name
        input_hash = compute_input_hash(
            name,
            {
                "run_id": context.run_id,
                "source_ref": str(context.source_ref),
                "inputs": {k: v.content_address for k, v in context.inputs.items()},
            },
        )
        logger.info("%s [%s] input_hash=%s", name, self.kind.value, input_hash)

        try:
            result = self.execute(context)
        except StageFailureError as exc:
            result = StageResult(
                failure=self._failure(name, exc.kind, str(exc), exc.step, exc.diagnostics, exc.detail)
            )
        except ExternalCallTimeout as exc:
            result = StageResult(failure=self._failure(name, FailureKind.TIMEOUT, str(exc)))
        except PermissionDeniedError as exc:
            result = StageResult(failure=self._failure(name, FailureKind.PERMISSION_DENIED, str(exc)))
        except Exception as exc:
            logger.exception("%s [%s] raised unexpectedly", name, self.kind.value)
            result = StageResult(
                failure=self._failure(name, self.failure_kind, f"{type(exc).__name__}: {exc}")
            )

        result.input_hash = input_hash
        if result.failure is not None:
            logger.error("%s failed: %s", name, result.failure.describe())
            return result

        outputs: dict[str, Any] = {k: sha256_hex(v) for k, v in result.outputs.items()}
        if result.deploy is not None:
            outputs["deploy"] = result.deploy.model_dump(mode="json")
        result.output_hash = compute_output_hash(name, outputs)
        logger.info("%s [%s] output_hash=%s", name, self.kind.value, result.output_hash)
        return result

    @staticmethod
    def _failure(
        stage: str,
        kind: FailureKind,
        message: str,
        step: CutoverStep | None = None,
        diagnostics: str = "",
        detail: dict[str, Any] | None = None,
    ) -> StageFailure:
        return StageFailure(
            kind=kind, stage=stage, message=message, step=step,
            diagnostics=diagnostics, detail=detail or {},
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} kind={self.kind.value!r}>"
