"""Canonical hashing helpers for content addressing and run records."""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: deterministic, sorted, compact."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def content_address(data: bytes) -> str:
    """Return the ``"sha256:<hex>"`` address of raw bytes."""
    return f"sha256:{sha256_hex(data)}"


def compute_input_hash(stage_name: str, inputs: dict[str, Any]) -> str:
    """SHA-256 of canonical(stage name + sorted inputs)."""
    payload = {"stage": stage_name, "inputs": inputs}
    return sha256_hex(canonical_json_bytes(payload))


def compute_output_hash(stage_name: str, outputs: dict[str, Any]) -> str:
    """SHA-256 of canonical(stage name + sorted outputs)."""
    payload = {"stage": stage_name, "outputs": outputs}
    return sha256_hex(canonical_json_bytes(payload))


def compute_entry_hash(entry_dict: dict[str, Any]) -> str:
    """SHA-256 of a ledger entry, excluding the entry_hash field itself."""
    d = {k: v for k, v in entry_dict.items() if k != "entry_hash"}
    return sha256_hex(canonical_json_bytes(d))
