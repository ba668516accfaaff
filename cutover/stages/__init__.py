"""Stage executors and their dispatch by ``StageKind``.

Usage::

    from cutover.stages import StageExecutors

    executors = StageExecutors(
        source=SourceStage(provider, vault),
        build=BuildStage(toolchain),
        deploy=DeployStage(alias_manager),
    )
    executor = executors.for_kind(StageKind.BUILD)
"""

from __future__ import annotations

from cutover.models.stages import StageKind
from cutover.stages.base import (
    StageContext,
    StageExecutor,
    StageFailureError,
    StageResult,
)
from cutover.stages.build import BuildStage
from cutover.stages.deploy import DeployStage
from cutover.stages.source import SourceStage


class StageExecutors:
    """One executor per ``StageKind``; every kind must be covered."""

    def __init__(
        self,
        *,
        source: StageExecutor,
        build: StageExecutor,
        deploy: StageExecutor,
    ) -> None:
        self._by_kind: dict[StageKind, StageExecutor] = {
            StageKind.SOURCE: source,
            StageKind.BUILD: build,
            StageKind.DEPLOY: deploy,
        }
        for kind, executor in self._by_kind.items():
            if executor.kind != kind:
                raise ValueError(
                    f"{executor!r} cannot serve {kind.value} stages"
                )
        uncovered = set(StageKind) - set(self._by_kind)
        if uncovered:
            raise ValueError(f"No executor for stage kinds {sorted(k.value for k in uncovered)}")

    def for_kind(self, kind: StageKind) -> StageExecutor:
        return self._by_kind[kind]


__all__ = [
    "BuildStage",
    "DeployStage",
    "SourceStage",
    "StageContext",
    "StageExecutor",
    "StageExecutors",
    "StageFailureError",
    "StageResult",
]
