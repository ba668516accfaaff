"""Versioned deploys and atomic alias cutover.

``AliasManager`` is the one piece of state shared by concurrent runs: the
mapping from a traffic-facing alias to a published version (held by the
compute host). It never writes an alias without compare-and-set, and it
only ever points an alias at a version it has confirmed published with the
expected code.
"""

from __future__ import annotations

import logging
import threading
import weakref

from cutover.core.hasher import sha256_hex
from cutover.core.scoped_host import ScopedComputeHost
from cutover.models.permissions import PermissionSet
from cutover.providers.base import (
    AliasConflictError,
    AliasNotFoundError,
    ComputeHost,
    VersionConflictError,
    VersionInfo,
)

logger = logging.getLogger(__name__)

# host -> {function name -> lock serializing update_code + publish_version}.
# Shared by every AliasManager over the same host object.
_publish_locks: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()
_publish_guard = threading.Lock()


class AliasManager:
    """Publishes versions and moves aliases between them.

    Parameters
    ----------
    host:
        The compute host that owns functions, versions and aliases.
    """

    def __init__(self, host: ComputeHost) -> None:
        self._host = host

    def scoped(self, grant: PermissionSet, timeout: float | None) -> ScopedComputeHost:
        """A host view limited to *grant*, bounding each call by *timeout*."""
        return ScopedComputeHost(self._host, grant, timeout)

    def _publish_lock(self, function_name: str) -> threading.Lock:
        with _publish_guard:
            per_host = _publish_locks.setdefault(self._host, {})
            return per_host.setdefault(function_name, threading.Lock())

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def resolve(self, host: ScopedComputeHost, function_name: str, alias_name: str) -> str | None:
        """Return the version *alias_name* resolves to, or None if absent."""
        try:
            return host.get_alias(function_name, alias_name)
        except AliasNotFoundError:
            return None

    def code_sha256(self, host: ScopedComputeHost, function_name: str, version: str) -> str:
        return host.get_version(function_name, version).code_sha256

    # ------------------------------------------------------------------
    # Publish (cutover steps 1-2)
    # ------------------------------------------------------------------

    def publish(
        self, host: ScopedComputeHost, function_name: str, package: bytes
    ) -> VersionInfo:
        """Push *package* to the unaliased function and publish a version.

        Raises ``PackageRejectedError`` if the host refuses the code and
        ``VersionConflictError`` if the published version does not carry
        exactly this package. No alias is touched here.
        """
        expected = sha256_hex(package)
        with self._publish_lock(function_name):
            update = host.update_code(function_name, package)
            if update.code_sha256 != expected:
                raise VersionConflictError(
                    f"Host reports code {update.code_sha256} after uploading {expected}"
                )
            published = host.publish_version(function_name, expected_code_sha256=expected)

        confirmed = host.get_version(function_name, published.version)
        if confirmed.code_sha256 != expected:
            raise VersionConflictError(
                f"Version {published.version} of {function_name} holds code "
                f"{confirmed.code_sha256}, expected {expected}"
            )
        logger.info(
            "Published %s version %s (code %s)",
            function_name, published.version, expected[:12],
        )
        return confirmed

    # ------------------------------------------------------------------
    # Switch (cutover step 3)
    # ------------------------------------------------------------------

    def switch(
        self,
        host: ScopedComputeHost,
        function_name: str,
        alias_name: str,
        new_version: str,
        *,
        observed_prior: str | None,
    ) -> bool:
        """Point *alias_name* at *new_version* with a single compare-and-set.

        *observed_prior* is the version the alias resolved to when the deploy
        began (None if the alias did not exist). Returns True when the alias
        was created. Raises ``AliasConflictError`` if anything moved the
        alias in between; the alias is then left exactly as the other
        writer set it.
        """
        if observed_prior is None:
            # First deploy: confirm absence immediately before creating.
            current = self.resolve(host, function_name, alias_name)
            if current is not None:
                raise AliasConflictError(
                    f"Alias {alias_name} of {function_name} appeared concurrently "
                    f"(now at version {current})"
                )
            host.create_alias(function_name, alias_name, new_version)
            logger.info("Created alias %s:%s -> %s", function_name, alias_name, new_version)
            return True

        host.set_alias(
            function_name,
            alias_name,
            new_version,
            expected_prior_version=observed_prior,
        )
        logger.info(
            "Switched alias %s:%s %s -> %s",
            function_name, alias_name, observed_prior, new_version,
        )
        return False
