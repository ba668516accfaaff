"""Cutover data models: all Pydantic v2, all frozen (immutable)."""

from cutover.models.artifacts import ArtifactRef
from cutover.models.config import PipelineConfig, SourceRef
from cutover.models.failures import CutoverStep, FailureKind, StageFailure
from cutover.models.ledger import RUN_STAGE_ID, DeployRecord, LedgerEntry
from cutover.models.permissions import MUTATING_PERMISSIONS, Permission, PermissionSet
from cutover.models.runs import (
    DeployResult,
    PipelineRunResult,
    RunStatus,
    StageOutcome,
)
from cutover.models.stages import (
    PACKAGE_ARTIFACT,
    SOURCE_ARTIFACT,
    VALID_TRANSITIONS,
    StageDefinition,
    StageKind,
    StageState,
    default_stage_definitions,
)

__all__ = [
    # artifacts
    "ArtifactRef",
    # config
    "PipelineConfig",
    "SourceRef",
    # failures
    "CutoverStep",
    "FailureKind",
    "StageFailure",
    # ledger
    "RUN_STAGE_ID",
    "DeployRecord",
    "LedgerEntry",
    # permissions
    "MUTATING_PERMISSIONS",
    "Permission",
    "PermissionSet",
    # runs
    "DeployResult",
    "PipelineRunResult",
    "RunStatus",
    "StageOutcome",
    # stages
    "PACKAGE_ARTIFACT",
    "SOURCE_ARTIFACT",
    "VALID_TRANSITIONS",
    "StageDefinition",
    "StageKind",
    "StageState",
    "default_stage_definitions",
]
