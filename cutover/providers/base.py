"""Interfaces of the external collaborators the release core depends on.

The core never provisions anything. It talks to:

* a **source provider** that yields a versioned repository snapshot,
* a **credential vault** that yields secret values by name,
* a **compute host** that accepts code packages, publishes immutable
  versions and maintains aliases,
* a **toolchain** that turns a source snapshot into a package.

Any object with the right methods satisfies these Protocols. Failures are
signalled with the exceptions defined here.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SourceNotFoundError(LookupError):
    """The repository or branch does not exist."""


class SourceAuthError(RuntimeError):
    """The source provider rejected the credentials."""


class SecretNotFoundError(LookupError):
    """The vault has no such secret or field."""


class ComputeHostError(RuntimeError):
    """The compute host failed a request."""


class PackageRejectedError(ComputeHostError):
    """The compute host refused a code package (e.g. malformed archive)."""


class AliasNotFoundError(ComputeHostError, LookupError):
    """The alias does not exist on the function."""


class AliasConflictError(ComputeHostError):
    """A compare-and-set alias write lost against a concurrent change."""


class VersionConflictError(ComputeHostError):
    """Publishing was refused because the unaliased code hash changed."""


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


class SourceSnapshot(BaseModel):
    """A versioned snapshot of a repository state."""

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    branch: str
    revision: str
    archive: bytes  # zip of the tree at ``revision``


class UpdateResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    function_name: str
    code_sha256: str


class VersionInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    function_name: str
    version: str
    code_sha256: str


class BuildOutcome(BaseModel):
    """What the toolchain produced. ``package`` is set only on success."""

    model_config = ConfigDict(frozen=True)

    succeeded: bool
    package: bytes | None = None
    diagnostics: str = ""
    exit_code: int | None = None


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class SourceProvider(Protocol):
    def fetch(
        self,
        owner: str,
        repo: str,
        branch: str,
        *,
        token: str | None = None,
        revision: str | None = None,
    ) -> SourceSnapshot:
        """Return the snapshot or raise SourceNotFoundError / SourceAuthError."""
        ...


@runtime_checkable
class CredentialVault(Protocol):
    def get_secret(self, name: str, field: str | None = None) -> str:
        """Return the secret value or raise SecretNotFoundError."""
        ...


@runtime_checkable
class ComputeHost(Protocol):
    """The function runtime.

    Version identifiers are strings of monotonically increasing integers.
    Alias writes are compare-and-set: ``set_alias`` succeeds only when the
    alias currently resolves to ``expected_prior_version``.
    """

    def update_code(self, function_name: str, package: bytes) -> UpdateResult:
        ...

    def publish_version(
        self, function_name: str, *, expected_code_sha256: str | None = None
    ) -> VersionInfo:
        ...

    def get_version(self, function_name: str, version: str) -> VersionInfo:
        ...

    def get_alias(self, function_name: str, alias_name: str) -> str:
        """Return the version the alias resolves to or raise AliasNotFoundError."""
        ...

    def create_alias(self, function_name: str, alias_name: str, version: str) -> None:
        """Create the alias or raise AliasConflictError if it already exists."""
        ...

    def set_alias(
        self,
        function_name: str,
        alias_name: str,
        version: str,
        *,
        expected_prior_version: str | None = None,
    ) -> None:
        ...


@runtime_checkable
class Toolchain(Protocol):
    def build(self, source_archive: bytes, *, timeout: float) -> BuildOutcome:
        """Build the package. May raise ExternalCallTimeout."""
        ...
