"""External collaborator interfaces and reference implementations."""

from cutover.providers.base import (
    AliasConflictError,
    AliasNotFoundError,
    BuildOutcome,
    ComputeHost,
    ComputeHostError,
    CredentialVault,
    PackageRejectedError,
    SecretNotFoundError,
    SourceAuthError,
    SourceNotFoundError,
    SourceProvider,
    SourceSnapshot,
    Toolchain,
    UpdateResult,
    VersionConflictError,
    VersionInfo,
)
from cutover.providers.memory import (
    InMemoryComputeHost,
    InMemoryCredentialVault,
    InMemorySourceProvider,
)
from cutover.providers.toolchain import (
    StaticToolchain,
    SubprocessToolchain,
    go_function_toolchain,
    pack_tree,
)

__all__ = [
    "AliasConflictError",
    "AliasNotFoundError",
    "BuildOutcome",
    "ComputeHost",
    "ComputeHostError",
    "CredentialVault",
    "InMemoryComputeHost",
    "InMemoryCredentialVault",
    "InMemorySourceProvider",
    "PackageRejectedError",
    "SecretNotFoundError",
    "SourceAuthError",
    "SourceNotFoundError",
    "SourceProvider",
    "SourceSnapshot",
    "StaticToolchain",
    "SubprocessToolchain",
    "Toolchain",
    "UpdateResult",
    "VersionConflictError",
    "VersionInfo",
    "go_function_toolchain",
    "pack_tree",
]
