"""Stage definitions and the per-run stage state model."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from cutover.models.permissions import PermissionSet


class StageKind(str, Enum):
    """The closed set of stage variants an executor can dispatch on."""

    SOURCE = "source"
    BUILD = "build"
    DEPLOY = "deploy"


class StageState(str, Enum):
    """Strict state model for each stage within a run."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


# Terminal states (PASSED, FAILED, SKIPPED) have no outgoing transitions.
# There is no FAILED -> NOT_STARTED edge: a run never retries a stage.
VALID_TRANSITIONS: dict[StageState, set[StageState]] = {
    StageState.NOT_STARTED: {StageState.RUNNING, StageState.SKIPPED},
    StageState.RUNNING: {StageState.PASSED, StageState.FAILED},
    StageState.PASSED: set(),
    StageState.FAILED: set(),
    StageState.SKIPPED: set(),
}


class StageDefinition(BaseModel):
    """One stage of a pipeline.

    ``inputs`` name artifacts that an earlier stage lists in ``outputs``.
    ``permissions`` is ``None`` until the pipeline fills it in from the
    permission scoper; an explicit value is validated against the scope.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: StageKind
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    permissions: PermissionSet | None = None


SOURCE_ARTIFACT = "source"
PACKAGE_ARTIFACT = "package"


def default_stage_definitions() -> list[StageDefinition]:
    """The standard Source -> Build -> Deploy wiring."""
    return [
        StageDefinition(
            name="Source",
            kind=StageKind.SOURCE,
            outputs=(SOURCE_ARTIFACT,),
        ),
        StageDefinition(
            name="Build",
            kind=StageKind.BUILD,
            inputs=(SOURCE_ARTIFACT,),
            outputs=(PACKAGE_ARTIFACT,),
        ),
        StageDefinition(
            name="Deploy",
            kind=StageKind.DEPLOY,
            inputs=(PACKAGE_ARTIFACT,),
        ),
    ]
