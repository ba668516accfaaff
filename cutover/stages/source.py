"""Source stage: fetch a repository snapshot and emit it as ``source``."""

from __future__ import annotations

import logging
from typing import ClassVar

from cutover.core.scoped_host import require
from cutover.core.timeouts import bounded_call
from cutover.models.failures import FailureKind
from cutover.models.permissions import Permission
from cutover.models.stages import SOURCE_ARTIFACT, StageKind
from cutover.providers.base import (
    CredentialVault,
    SecretNotFoundError,
    SourceAuthError,
    SourceNotFoundError,
    SourceProvider,
)
from cutover.stages.base import StageContext, StageExecutor, StageFailureError, StageResult

logger = logging.getLogger(__name__)


class SourceStage(StageExecutor):
    """Reads the source token from the vault and fetches the snapshot.

    Parameters
    ----------
    provider:
        Source control provider.
    vault:
        Credential vault holding the provider token. With no vault the
        fetch is attempted anonymously.
    """

    kind: ClassVar[StageKind] = StageKind.SOURCE
    failure_kind: ClassVar[FailureKind] = FailureKind.SOURCE_FETCH_FAILED

    def __init__(self, provider: SourceProvider, vault: CredentialVault | None = None) -> None:
        self._provider = provider
        self._vault = vault

    def execute(self, context: StageContext) -> StageResult:
        ref = context.source_ref
        timeout = context.config.external_call_timeout_seconds

        token: str | None = None
        if self._vault is not None:
            require(context.grant, Permission.SECRET_READ)
            try:
                token = bounded_call(
                    self._vault.get_secret,
                    context.config.source_secret_name,
                    context.config.source_secret_field,
                    timeout=timeout,
                    operation="get_secret",
                )
            except SecretNotFoundError as exc:
                raise StageFailureError(
                    FailureKind.SOURCE_FETCH_FAILED,
                    f"Source credential unavailable: {exc}",
                ) from exc

        require(context.grant, Permission.SOURCE_FETCH)
        try:
            snapshot = bounded_call(
                self._provider.fetch,
                ref.owner,
                ref.repo,
                ref.branch,
                token=token,
                revision=ref.revision,
                timeout=timeout,
                operation="fetch_source",
            )
        except SourceNotFoundError as exc:
            raise StageFailureError(
                FailureKind.SOURCE_FETCH_FAILED, f"Source not found: {ref} ({exc})"
            ) from exc
        except SourceAuthError as exc:
            raise StageFailureError(
                FailureKind.SOURCE_FETCH_FAILED, f"Source authentication failed: {exc}"
            ) from exc

        logger.info("Fetched %s at revision %s", ref, snapshot.revision)
        require(context.grant, Permission.ARTIFACT_WRITE)
        return StageResult(outputs={SOURCE_ARTIFACT: snapshot.archive})
