"""Typed stage failures."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class FailureKind(str, Enum):
    SOURCE_FETCH_FAILED = "source_fetch_failed"
    BUILD_FAILED = "build_failed"
    PACKAGE_INVALID = "package_invalid"
    ALIAS_CONFLICT = "alias_conflict"
    TIMEOUT = "timeout"
    STAGE_CONTRACT_VIOLATION = "stage_contract_violation"
    PERMISSION_DENIED = "permission_denied"
    DEPLOY_FAILED = "deploy_failed"
    CANCELLED = "cancelled"


class CutoverStep(str, Enum):
    """Steps of the deploy cutover, used to locate a deploy failure."""

    OBSERVE = "observe"
    CODE_UPDATE = "code_update"
    PUBLISH = "publish"
    ALIAS_SWITCH = "alias_switch"


class StageFailure(BaseModel):
    """A failure reported by a stage as a value, never as a fault.

    ``diagnostics`` carries captured tool output (build logs) verbatim.
    ``step`` is set for deploy failures to the cutover step that failed.
    ``detail`` carries structured context for audit, e.g. the version an
    alias write left live when it settled after its deadline.
    """

    model_config = ConfigDict(frozen=True)

    kind: FailureKind
    stage: str
    message: str
    step: CutoverStep | None = None
    diagnostics: str = ""
    detail: dict[str, Any] = {}

    def describe(self) -> str:
        where = f"{self.stage}/{self.step.value}" if self.step else self.stage
        return f"{self.kind.value} at {where}: {self.message}"
