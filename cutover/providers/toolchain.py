"""Toolchains that turn a source snapshot into a deployable package.

``SubprocessToolchain`` runs a real build command over the unpacked source
tree; ``StaticToolchain`` returns a package computed in-process and is what
tests and the demo use.
"""

from __future__ import annotations

import io
import logging
import os
import subprocess
import tempfile
import zipfile
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from cutover.core.hasher import sha256_hex
from cutover.core.timeouts import ExternalCallTimeout
from cutover.providers.base import BuildOutcome

logger = logging.getLogger(__name__)

# Fixed zip timestamp so identical trees produce identical bytes.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def pack_tree(files: Mapping[str, bytes | str], *, executable: Sequence[str] = ()) -> bytes:
    """Deterministically zip ``{path: content}``."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path in sorted(files):
            content = files[path]
            info = zipfile.ZipInfo(path, date_time=_ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            mode = 0o755 if path in executable else 0o644
            info.external_attr = (0o100000 | mode) << 16
            info.create_system = 3
            data = content.encode("utf-8") if isinstance(content, str) else content
            zf.writestr(info, data)
    return buf.getvalue()


def unpack_tree(archive: bytes, dest: Path) -> list[str]:
    """Extract *archive* under *dest*, refusing entries that escape it."""
    root = dest.resolve()
    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        names = zf.namelist()
        for name in names:
            target = (root / name).resolve()
            if root != target and root not in target.parents:
                raise ValueError(f"Archive entry escapes the build directory: {name!r}")
        zf.extractall(root)
    return names


class SubprocessToolchain:
    """Runs a build command inside the unpacked source tree.

    Parameters
    ----------
    command:
        The build command, e.g. ``["go", "build", "-o", "bootstrap", "."]``.
    artifact:
        Path of the produced binary, relative to the source root. It is
        zipped as the package with the same name, marked executable.
    env:
        Extra environment variables for the command.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        artifact: str = "bootstrap",
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.command = list(command)
        self.artifact = artifact
        self.env = dict(env or {})

    def build(self, source_archive: bytes, *, timeout: float) -> BuildOutcome:
        with tempfile.TemporaryDirectory(prefix="cutover-build-") as tmp:
            workdir = Path(tmp)
            try:
                unpack_tree(source_archive, workdir)
            except (zipfile.BadZipFile, ValueError) as exc:
                return BuildOutcome(succeeded=False, diagnostics=f"Unreadable source archive: {exc}")

            logger.info("Running %s in %s", " ".join(self.command), workdir)
            try:
                proc = subprocess.run(
                    self.command,
                    cwd=workdir,
                    env={**os.environ, **self.env},
                    capture_output=True,
                    text=True,
                    timeout=timeout if timeout and timeout > 0 else None,
                )
            except subprocess.TimeoutExpired as exc:
                raise ExternalCallTimeout(
                    f"Build command did not finish within {timeout:.1f}s",
                    operation="toolchain",
                ) from exc
            except OSError as exc:
                return BuildOutcome(succeeded=False, diagnostics=f"Could not start toolchain: {exc}")

            diagnostics = (proc.stdout or "") + (proc.stderr or "")
            if proc.returncode != 0:
                return BuildOutcome(
                    succeeded=False, diagnostics=diagnostics, exit_code=proc.returncode
                )

            produced = workdir / self.artifact
            if not produced.is_file():
                return BuildOutcome(
                    succeeded=False,
                    diagnostics=diagnostics + f"\nBuild did not produce {self.artifact}",
                    exit_code=proc.returncode,
                )
            package = pack_tree(
                {self.artifact: produced.read_bytes()}, executable=[self.artifact]
            )
            return BuildOutcome(
                succeeded=True, package=package, diagnostics=diagnostics, exit_code=0
            )


def go_function_toolchain() -> SubprocessToolchain:
    """Cross-compile a Go function to a ``bootstrap`` binary for a custom runtime."""
    return SubprocessToolchain(
        ["go", "build", "-tags", "lambda.norpc", "-o", "bootstrap", "."],
        artifact="bootstrap",
        env={"GOOS": "linux", "GOARCH": "amd64", "CGO_ENABLED": "0"},
    )


class StaticToolchain:
    """In-process toolchain.

    Parameters
    ----------
    package_fn:
        Maps the source archive to package bytes. Defaults to zipping the
        archive's digest as a ``bootstrap`` entry, so distinct sources give
        distinct packages.
    fail_with:
        If set, every build fails with these diagnostics.
    exit_code:
        Exit code reported with ``fail_with``.
    """

    def __init__(
        self,
        package_fn: Callable[[bytes], bytes] | None = None,
        *,
        fail_with: str | None = None,
        exit_code: int = 1,
    ) -> None:
        self._package_fn = package_fn or _digest_package
        self._fail_with = fail_with
        self._exit_code = exit_code
        self.builds = 0

    def build(self, source_archive: bytes, *, timeout: float) -> BuildOutcome:
        self.builds += 1
        if self._fail_with is not None:
            return BuildOutcome(
                succeeded=False, diagnostics=self._fail_with, exit_code=self._exit_code
            )
        return BuildOutcome(succeeded=True, package=self._package_fn(source_archive), exit_code=0)


def _digest_package(source_archive: bytes) -> bytes:
    digest = sha256_hex(source_archive)
    return pack_tree({"bootstrap": f"#!/bin/sh\n# build of {digest}\n"}, executable=["bootstrap"])
