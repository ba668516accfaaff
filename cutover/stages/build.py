"""Build stage: run the toolchain over ``source`` and emit ``package``."""

from __future__ import annotations

import functools
import logging
from typing import ClassVar

from cutover.core.scoped_host import require
from cutover.core.timeouts import bounded_call
from cutover.models.failures import FailureKind
from cutover.models.permissions import Permission
from cutover.models.stages import PACKAGE_ARTIFACT, SOURCE_ARTIFACT, StageKind
from cutover.providers.base import Toolchain
from cutover.stages.base import StageContext, StageExecutor, StageFailureError, StageResult

logger = logging.getLogger(__name__)


class BuildStage(StageExecutor):
    """Treats the toolchain as a black box: source in, package or failure out."""

    kind: ClassVar[StageKind] = StageKind.BUILD
    failure_kind: ClassVar[FailureKind] = FailureKind.BUILD_FAILED

    def __init__(self, toolchain: Toolchain) -> None:
        self._toolchain = toolchain

    def execute(self, context: StageContext) -> StageResult:
        source = context.read(SOURCE_ARTIFACT)
        budget = context.config.build_timeout_seconds
        outcome = bounded_call(
            functools.partial(self._toolchain.build, timeout=budget),
            source,
            timeout=budget,
            operation="toolchain",
        )

        if not outcome.succeeded:
            code = "" if outcome.exit_code is None else f" (exit code {outcome.exit_code})"
            raise StageFailureError(
                FailureKind.BUILD_FAILED,
                f"Toolchain failed{code}",
                diagnostics=outcome.diagnostics,
            )
        if not outcome.package:
            raise StageFailureError(
                FailureKind.BUILD_FAILED,
                "Toolchain reported success but produced no package",
                diagnostics=outcome.diagnostics,
            )

        logger.info("Built package of %d bytes", len(outcome.package))
        require(context.grant, Permission.ARTIFACT_WRITE)
        return StageResult(outputs={PACKAGE_ARTIFACT: outcome.package})
