"""Run outcome models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from cutover.models.artifacts import ArtifactRef
from cutover.models.failures import StageFailure
from cutover.models.stages import StageState


class RunStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DeployResult(BaseModel):
    """What the deploy stage did to the alias."""

    model_config = ConfigDict(frozen=True)

    function_name: str
    alias_name: str
    version: str
    previous_version: str | None = None
    code_sha256: str = ""
    alias_created: bool = False
    noop: bool = False  # alias already served this exact code


class StageOutcome(BaseModel):
    """The recorded result of one stage in a run."""

    model_config = ConfigDict(frozen=True)

    stage: str
    state: StageState
    outputs: dict[str, ArtifactRef] = {}
    failure: StageFailure | None = None


class PipelineRunResult(BaseModel):
    """The result of ``PipelineOrchestrator.run``."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    status: RunStatus
    stages: list[StageOutcome] = []
    artifacts: dict[str, ArtifactRef] = {}
    failure: StageFailure | None = None
    deploy: DeployResult | None = None
    started_at: datetime
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def failed_stage(self) -> str | None:
        return self.failure.stage if self.failure else None
