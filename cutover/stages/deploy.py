"""Deploy stage: the atomic cutover protocol.

1. Observe the version the alias resolves to right now.
2. Push the package to the unaliased function (never over the live version).
3. Publish an immutable version and confirm it carries exactly this package.
   A rejected package fails here, before any alias is touched.
4. Move the alias with one compare-and-set against the version observed in
   step 1 (or create it if it did not exist). A conflict leaves the alias
   wherever the concurrent writer put it.

The stage emits no artifact; its product is the alias move, reported as a
``DeployResult``.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from cutover.core.alias_manager import AliasManager
from cutover.core.hasher import sha256_hex
from cutover.core.timeouts import ExternalCallTimeout
from cutover.models.failures import CutoverStep, FailureKind
from cutover.models.runs import DeployResult
from cutover.models.stages import PACKAGE_ARTIFACT, StageKind
from cutover.providers.base import (
    AliasConflictError,
    AliasNotFoundError,
    ComputeHostError,
    PackageRejectedError,
    VersionConflictError,
)
from cutover.stages.base import StageContext, StageExecutor, StageFailureError, StageResult

logger = logging.getLogger(__name__)


class DeployStage(StageExecutor):
    """Publishes the package and cuts the alias over to it."""

    kind: ClassVar[StageKind] = StageKind.DEPLOY
    failure_kind: ClassVar[FailureKind] = FailureKind.DEPLOY_FAILED

    def __init__(self, alias_manager: AliasManager) -> None:
        self._aliases = alias_manager

    def execute(self, context: StageContext) -> StageResult:
        function_name = context.config.function_name
        alias_name = context.config.alias_name
        host = self._aliases.scoped(
            context.grant, context.config.external_call_timeout_seconds
        )

        package = context.read(PACKAGE_ARTIFACT)
        if not package:
            raise StageFailureError(FailureKind.PACKAGE_INVALID, "Package is empty")
        package_sha = sha256_hex(package)

        # -- observe ----------------------------------------------------
        try:
            prior = self._aliases.resolve(host, function_name, alias_name)
            if prior is not None and self._aliases.code_sha256(host, function_name, prior) == package_sha:
                logger.info(
                    "%s:%s already serves this package at version %s; nothing to do",
                    function_name, alias_name, prior,
                )
                return StageResult(
                    deploy=DeployResult(
                        function_name=function_name,
                        alias_name=alias_name,
                        version=prior,
                        previous_version=prior,
                        code_sha256=package_sha,
                        noop=True,
                    )
                )
        except ExternalCallTimeout as exc:
            raise StageFailureError(FailureKind.TIMEOUT, str(exc), step=CutoverStep.OBSERVE) from exc
        except ComputeHostError as exc:
            raise StageFailureError(
                FailureKind.DEPLOY_FAILED, f"Could not read alias: {exc}", step=CutoverStep.OBSERVE
            ) from exc

        # -- code update + publish ---------------------------------------
        try:
            published = self._aliases.publish(host, function_name, package)
        except PackageRejectedError as exc:
            raise StageFailureError(
                FailureKind.PACKAGE_INVALID,
                f"Compute host rejected the package: {exc}",
                step=CutoverStep.CODE_UPDATE,
            ) from exc
        except VersionConflictError as exc:
            raise StageFailureError(
                FailureKind.DEPLOY_FAILED, str(exc), step=CutoverStep.PUBLISH
            ) from exc
        except ExternalCallTimeout as exc:
            raise StageFailureError(FailureKind.TIMEOUT, str(exc), step=CutoverStep.PUBLISH) from exc
        except ComputeHostError as exc:
            raise StageFailureError(
                FailureKind.DEPLOY_FAILED, f"Publish failed: {exc}", step=CutoverStep.PUBLISH
            ) from exc

        # -- alias switch --------------------------------------------------
        try:
            created = self._aliases.switch(
                host, function_name, alias_name, published.version, observed_prior=prior
            )
        except (AliasConflictError, AliasNotFoundError) as exc:
            raise StageFailureError(
                FailureKind.ALIAS_CONFLICT,
                f"Alias {alias_name} changed during deploy; version "
                f"{published.version} stays published but not live: {exc}",
                step=CutoverStep.ALIAS_SWITCH,
            ) from exc
        except ExternalCallTimeout as exc:
            detail: dict[str, Any] = {
                "settled": exc.settled,
                "published_version": published.version,
            }
            if exc.settled == "completed":
                # The write landed late: the alias serves the new version.
                detail["deploy"] = DeployResult(
                    function_name=function_name,
                    alias_name=alias_name,
                    version=published.version,
                    previous_version=prior,
                    code_sha256=package_sha,
                    alias_created=prior is None,
                ).model_dump(mode="json")
            raise StageFailureError(
                FailureKind.TIMEOUT, str(exc), step=CutoverStep.ALIAS_SWITCH, detail=detail
            ) from exc
        except ComputeHostError as exc:
            raise StageFailureError(
                FailureKind.DEPLOY_FAILED, f"Alias switch failed: {exc}", step=CutoverStep.ALIAS_SWITCH
            ) from exc

        return StageResult(
            deploy=DeployResult(
                function_name=function_name,
                alias_name=alias_name,
                version=published.version,
                previous_version=prior,
                code_sha256=package_sha,
                alias_created=created,
            )
        )
