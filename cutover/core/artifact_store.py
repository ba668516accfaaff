"""Content-addressed, run-scoped artifact store.

Storage layout:
    {base_path}/blobs/{sha256[0:2]}/{sha256[2:4]}/{sha256}.dat
    {base_path}/runs/{run_id}/{name}.json      (the ArtifactRef, write-once)

No delete method; artifacts are immutable once stored. The store is the
handoff point between stages of one run, not a general object store.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

from cutover.core.hasher import content_address, sha256_hex
from cutover.models.artifacts import ArtifactRef

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def is_valid_name(value: str) -> bool:
    """Whether *value* can be used as an artifact name or run id."""
    return bool(_NAME_RE.match(value))


class ArtifactNotFoundError(LookupError):
    """Raised when a reference does not resolve to stored bytes."""


class ArtifactIntegrityError(RuntimeError):
    """Raised when a stored artifact's hash does not match its address."""


class ArtifactImmutableError(RuntimeError):
    """Raised when a run tries to rebind an artifact name to new content."""


class ContentAddressedStore:
    """SHA-256 keyed, immutable artifact store.

    Blobs are stored under their SHA-256 digest, so storing the same content
    twice is a no-op. Each ``(run_id, name)`` binding is written once.

    Parameters
    ----------
    base_path:
        Root directory for artifact storage.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        (self._base / "blobs").mkdir(parents=True, exist_ok=True)
        (self._base / "runs").mkdir(parents=True, exist_ok=True)

    def _blob_path(self, digest: str) -> Path:
        return self._base / "blobs" / digest[:2] / digest[2:4] / f"{digest}.dat"

    def _binding_path(self, run_id: str, name: str) -> Path:
        return self._base / "runs" / run_id / f"{name}.json"

    @staticmethod
    def _check_name(value: str, what: str) -> None:
        if not is_valid_name(value):
            raise ValueError(f"Invalid artifact {what}: {value!r}")

    # ------------------------------------------------------------------
    # Put
    # ------------------------------------------------------------------

    def put(
        self,
        run_id: str,
        name: str,
        data: bytes,
        *,
        producer_stage: str = "",
    ) -> ArtifactRef:
        """Store *data* as artifact *name* of *run_id* and return its ref.

        Re-putting identical content under the same name returns the
        original ref. Different content under an existing name raises
        ``ArtifactImmutableError``.
        """
        self._check_name(run_id, "run id")
        self._check_name(name, "name")

        address = content_address(data)
        self._write_blob(address.removeprefix("sha256:"), data)

        ref = ArtifactRef(
            run_id=run_id,
            name=name,
            content_address=address,
            producer_stage=producer_stage,
            size_bytes=len(data),
        )

        binding = self._binding_path(run_id, name)
        binding.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(binding, "x", encoding="utf-8") as fh:
                fh.write(ref.model_dump_json())
        except FileExistsError:
            existing = self._read_binding(binding)
            if existing.content_address != ref.content_address:
                raise ArtifactImmutableError(
                    f"Artifact {name!r} of run {run_id} is already bound to "
                    f"{existing.content_address}"
                ) from None
            return existing

        logger.debug("Stored %s for run %s (%d bytes)", ref.label(), run_id, len(data))
        return ref

    def _write_blob(self, digest: str, data: bytes) -> None:
        path = self._blob_path(digest)
        if path.exists():
            if not self.verify(f"sha256:{digest}"):
                raise ArtifactIntegrityError(
                    f"Existing artifact at {digest} failed integrity check"
                )
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Get
    # ------------------------------------------------------------------

    def get(self, ref: ArtifactRef) -> bytes:
        """Return the bytes originally written under *ref*.

        The ref must be bound in its own run; a ref from another run or a
        fabricated ref raises ``ArtifactNotFoundError``.
        """
        binding = self._binding_path(ref.run_id, ref.name)
        if not binding.exists():
            raise ArtifactNotFoundError(
                f"Artifact {ref.name!r} was not recorded for run {ref.run_id}"
            )
        bound = self._read_binding(binding)
        if bound.content_address != ref.content_address:
            raise ArtifactNotFoundError(
                f"Artifact {ref.label()} does not match run {ref.run_id}'s "
                f"binding {bound.content_address}"
            )

        path = self._blob_path(ref.digest)
        if not path.exists():
            raise ArtifactNotFoundError(f"Artifact not found: {ref.content_address}")
        data = path.read_bytes()
        if sha256_hex(data) != ref.digest:
            raise ArtifactIntegrityError(
                f"Artifact {ref.content_address} failed integrity check"
            )
        return data

    def lookup(self, run_id: str, name: str) -> ArtifactRef | None:
        """Return the ref bound to *name* in *run_id*, or None."""
        binding = self._binding_path(run_id, name)
        if not binding.exists():
            return None
        return self._read_binding(binding)

    def run_artifacts(self, run_id: str) -> list[ArtifactRef]:
        """All artifacts bound in *run_id*, ordered by name."""
        run_dir = self._base / "runs" / run_id
        if not run_dir.is_dir():
            return []
        return [self._read_binding(p) for p in sorted(run_dir.glob("*.json"))]

    # ------------------------------------------------------------------
    # Check and verify
    # ------------------------------------------------------------------

    def exists(self, content_address: str) -> bool:
        return self._blob_path(content_address.removeprefix("sha256:")).exists()

    def verify(self, content_address: str) -> bool:
        """Re-hash stored data and compare against the content address."""
        digest = content_address.removeprefix("sha256:")
        path = self._blob_path(digest)
        if not path.exists():
            return False
        return sha256_hex(path.read_bytes()) == digest

    @staticmethod
    def _read_binding(path: Path) -> ArtifactRef:
        return ArtifactRef.model_validate_json(path.read_text(encoding="utf-8"))
