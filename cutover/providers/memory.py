"""In-memory providers for tests, demos and local dry runs.

``InMemoryComputeHost`` models the parts of a function runtime the cutover
depends on: one mutable unaliased code slot per function, immutable
published versions numbered from 1, and aliases with compare-and-set
writes. All operations are serialized by one lock, so each alias write is
atomic with respect to concurrent runs.
"""

from __future__ import annotations

import io
import json
import threading
import zipfile
from collections.abc import Iterable, Mapping

from cutover.core.hasher import sha256_hex
from cutover.providers.base import (
    AliasConflictError,
    AliasNotFoundError,
    ComputeHostError,
    PackageRejectedError,
    SecretNotFoundError,
    SourceAuthError,
    SourceNotFoundError,
    SourceSnapshot,
    UpdateResult,
    VersionConflictError,
    VersionInfo,
)
from cutover.providers.toolchain import pack_tree


class _Function:
    def __init__(self) -> None:
        self.code_sha256 = ""
        self.code: bytes | None = None
        self.versions: dict[str, tuple[str, bytes]] = {}
        self.next_version = 1
        self.aliases: dict[str, str] = {}


class InMemoryComputeHost:
    """Thread-safe in-memory compute host.

    Parameters
    ----------
    functions:
        Function names that exist up front. Others can be added with
        ``create_function``.
    validate_packages:
        Reject code that is not a zip archive, as a real runtime would.
    """

    def __init__(self, functions: Iterable[str] = (), *, validate_packages: bool = True) -> None:
        self._lock = threading.RLock()
        self._functions: dict[str, _Function] = {name: _Function() for name in functions}
        self._validate = validate_packages
        # Mutating calls, in order: (operation, function, detail)
        self.calls: list[tuple[str, str, str]] = []

    def create_function(self, function_name: str) -> None:
        with self._lock:
            self._functions.setdefault(function_name, _Function())

    def _fn(self, function_name: str) -> _Function:
        try:
            return self._functions[function_name]
        except KeyError:
            raise ComputeHostError(f"Function not found: {function_name}") from None

    def _known_version(self, fn: _Function, function_name: str, version: str) -> None:
        if version not in fn.versions:
            raise ComputeHostError(f"Version {version} of {function_name} does not exist")

    # ------------------------------------------------------------------
    # Code and versions
    # ------------------------------------------------------------------

    def update_code(self, function_name: str, package: bytes) -> UpdateResult:
        with self._lock:
            fn = self._fn(function_name)
            if self._validate and not zipfile.is_zipfile(io.BytesIO(package)):
                raise PackageRejectedError("Could not unzip uploaded file")
            fn.code = package
            fn.code_sha256 = sha256_hex(package)
            self.calls.append(("update_code", function_name, fn.code_sha256))
            return UpdateResult(function_name=function_name, code_sha256=fn.code_sha256)

    def publish_version(
        self, function_name: str, *, expected_code_sha256: str | None = None
    ) -> VersionInfo:
        with self._lock:
            fn = self._fn(function_name)
            if fn.code is None:
                raise ComputeHostError(f"{function_name} has no code to publish")
            if expected_code_sha256 is not None and fn.code_sha256 != expected_code_sha256:
                raise VersionConflictError(
                    f"Code hash {fn.code_sha256} does not match expected {expected_code_sha256}"
                )
            version = str(fn.next_version)
            fn.next_version += 1
            fn.versions[version] = (fn.code_sha256, fn.code)
            self.calls.append(("publish_version", function_name, version))
            return VersionInfo(
                function_name=function_name, version=version, code_sha256=fn.code_sha256
            )

    def get_version(self, function_name: str, version: str) -> VersionInfo:
        with self._lock:
            fn = self._fn(function_name)
            self._known_version(fn, function_name, version)
            return VersionInfo(
                function_name=function_name, version=version, code_sha256=fn.versions[version][0]
            )

    def version_code(self, function_name: str, version: str) -> bytes:
        """The frozen code of a published version."""
        with self._lock:
            fn = self._fn(function_name)
            self._known_version(fn, function_name, version)
            return fn.versions[version][1]

    def list_versions(self, function_name: str) -> list[str]:
        with self._lock:
            return sorted(self._fn(function_name).versions, key=int)

    # ------------------------------------------------------------------
    # Aliases
    # ------------------------------------------------------------------

    def get_alias(self, function_name: str, alias_name: str) -> str:
        with self._lock:
            fn = self._functions.get(function_name)
            if fn is None or alias_name not in fn.aliases:
                raise AliasNotFoundError(f"Alias not found: {function_name}:{alias_name}")
            return fn.aliases[alias_name]

    def create_alias(self, function_name: str, alias_name: str, version: str) -> None:
        with self._lock:
            fn = self._fn(function_name)
            self._known_version(fn, function_name, version)
            if alias_name in fn.aliases:
                raise AliasConflictError(f"Alias already exists: {function_name}:{alias_name}")
            fn.aliases[alias_name] = version
            self.calls.append(("create_alias", function_name, f"{alias_name}={version}"))

    def set_alias(
        self,
        function_name: str,
        alias_name: str,
        version: str,
        *,
        expected_prior_version: str | None = None,
    ) -> None:
        with self._lock:
            fn = self._fn(function_name)
            self._known_version(fn, function_name, version)
            current = fn.aliases.get(alias_name)
            if current is None:
                raise AliasNotFoundError(f"Alias not found: {function_name}:{alias_name}")
            if expected_prior_version is not None and current != expected_prior_version:
                raise AliasConflictError(
                    f"Alias {function_name}:{alias_name} is at {current}, "
                    f"expected {expected_prior_version}"
                )
            fn.aliases[alias_name] = version
            self.calls.append(("set_alias", function_name, f"{alias_name}={version}"))


class InMemorySourceProvider:
    """Serves branches registered with ``add_branch``.

    Parameters
    ----------
    required_token:
        When set, fetches must present this token.
    """

    def __init__(self, *, required_token: str | None = None) -> None:
        self._required_token = required_token
        self._branches: dict[tuple[str, str, str], bytes] = {}
        self.fetches = 0

    def add_branch(
        self, owner: str, repo: str, branch: str, files: Mapping[str, bytes | str]
    ) -> str:
        """Register (or replace) the head of a branch; return its revision."""
        archive = pack_tree(files)
        self._branches[(owner, repo, branch)] = archive
        return sha256_hex(archive)[:12]

    def fetch(
        self,
        owner: str,
        repo: str,
        branch: str,
        *,
        token: str | None = None,
        revision: str | None = None,
    ) -> SourceSnapshot:
        self.fetches += 1
        if self._required_token is not None and token != self._required_token:
            raise SourceAuthError(f"Bad credentials for {owner}/{repo}")
        archive = self._branches.get((owner, repo, branch))
        if archive is None:
            raise SourceNotFoundError(f"{owner}/{repo}@{branch}")
        head = sha256_hex(archive)[:12]
        if revision is not None and revision != head:
            raise SourceNotFoundError(f"Revision {revision} not found on {owner}/{repo}@{branch}")
        return SourceSnapshot(owner=owner, repo=repo, branch=branch, revision=head, archive=archive)


class InMemoryCredentialVault:
    """Secrets by name; a field lookup reads a key of a JSON-object secret."""

    def __init__(self, secrets: Mapping[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def put_secret(self, name: str, value: str) -> None:
        self._secrets[name] = value

    def get_secret(self, name: str, field: str | None = None) -> str:
        if name not in self._secrets:
            raise SecretNotFoundError(f"Secret not found: {name}")
        value = self._secrets[name]
        if field is None:
            return value
        try:
            doc = json.loads(value)
        except json.JSONDecodeError:
            raise SecretNotFoundError(f"Secret {name} is not a JSON object") from None
        if not isinstance(doc, dict) or field not in doc:
            raise SecretNotFoundError(f"Secret {name} has no field {field!r}")
        return str(doc[field])
