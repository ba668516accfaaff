"""Compute-host access gated by a stage's permission grant."""

from __future__ import annotations

import logging

from cutover.core.timeouts import bounded_call
from cutover.models.permissions import Permission, PermissionSet
from cutover.providers.base import ComputeHost, UpdateResult, VersionInfo

logger = logging.getLogger(__name__)


class PermissionDeniedError(RuntimeError):
    """Raised when a stage calls something its grant does not allow."""

    def __init__(self, permission: Permission) -> None:
        super().__init__(f"Permission {permission.value} not granted")
        self.permission = permission


def require(grant: PermissionSet, permission: Permission) -> None:
    """Raise ``PermissionDeniedError`` unless *grant* allows *permission*."""
    if not grant.allows(permission):
        logger.error("Denied %s (granted: %s)", permission.value, grant.names())
        raise PermissionDeniedError(permission)


class ScopedComputeHost:
    """A ComputeHost view that checks the grant and bounds every call.

    Parameters
    ----------
    host:
        The real compute host.
    grant:
        Permissions issued to the calling stage.
    timeout:
        Bounded wait per call, in seconds.
    """

    def __init__(self, host: ComputeHost, grant: PermissionSet, timeout: float | None) -> None:
        self._host = host
        self._grant = grant
        self._timeout = timeout

    def update_code(self, function_name: str, package: bytes) -> UpdateResult:
        require(self._grant, Permission.FUNCTION_UPDATE_CODE)
        return bounded_call(
            self._host.update_code, function_name, package,
            timeout=self._timeout, operation="update_code", mutating=True,
        )

    def publish_version(
        self, function_name: str, *, expected_code_sha256: str | None = None
    ) -> VersionInfo:
        require(self._grant, Permission.FUNCTION_PUBLISH_VERSION)
        return bounded_call(
            self._host.publish_version, function_name,
            expected_code_sha256=expected_code_sha256,
            timeout=self._timeout, operation="publish_version", mutating=True,
        )

    def get_version(self, function_name: str, version: str) -> VersionInfo:
        require(self._grant, Permission.FUNCTION_GET_VERSION)
        return bounded_call(
            self._host.get_version, function_name, version,
            timeout=self._timeout, operation="get_version",
        )

    def get_alias(self, function_name: str, alias_name: str) -> str:
        require(self._grant, Permission.FUNCTION_GET_ALIAS)
        return bounded_call(
            self._host.get_alias, function_name, alias_name,
            timeout=self._timeout, operation="get_alias",
        )

    def create_alias(self, function_name: str, alias_name: str, version: str) -> None:
        require(self._grant, Permission.FUNCTION_CREATE_ALIAS)
        bounded_call(
            self._host.create_alias, function_name, alias_name, version,
            timeout=self._timeout, operation="create_alias", mutating=True,
        )

    def set_alias(
        self,
        function_name: str,
        alias_name: str,
        version: str,
        *,
        expected_prior_version: str | None = None,
    ) -> None:
        require(self._grant, Permission.FUNCTION_UPDATE_ALIAS)
        bounded_call(
            self._host.set_alias, function_name, alias_name, version,
            expected_prior_version=expected_prior_version,
            timeout=self._timeout, operation="set_alias", mutating=True,
        )
