"""Append-only, hash-chained run ledger backed by SQLite.

The ledger is the persisted run history: stage outcomes, artifact refs and
timestamps for every run, plus the deploy details needed to answer "what
did the last successful deploy put live?" for audit and rollback.

Design:
- Append-only: only ``append()`` writes; no update, no delete.
- Hash-chained per run: each entry includes SHA-256 of the previous entry.
- WAL journal mode so concurrent runs can write while readers query.
- Columns mirror ``LedgerEntry`` fields one to one; list and dict fields
  are stored as JSON text.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path
from typing import Any

from cutover.core.hasher import compute_entry_hash
from cutover.models.ledger import RUN_STAGE_ID, DeployRecord, LedgerEntry
from cutover.models.stages import StageKind, StageState

_SCHEMA = """
CREATE TABLE IF NOT EXISTS ledger_entries (
    seq                  INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id             TEXT NOT NULL UNIQUE,
    run_id               TEXT NOT NULL,
    stage_id             TEXT NOT NULL,
    stage_kind           TEXT NOT NULL,
    state_transition     TEXT NOT NULL,
    timestamp_utc        TEXT NOT NULL,
    input_hash           TEXT NOT NULL,
    output_hash          TEXT NOT NULL,
    artifact_references  TEXT NOT NULL,
    failure_kind         TEXT NOT NULL,
    detail               TEXT NOT NULL,
    pipeline_version     TEXT NOT NULL,
    previous_entry_hash  TEXT NOT NULL,
    entry_hash           TEXT NOT NULL UNIQUE
);
CREATE INDEX IF NOT EXISTS idx_entries_run ON ledger_entries(run_id, seq);
CREATE INDEX IF NOT EXISTS idx_entries_kind ON ledger_entries(stage_kind, state_transition, seq);
"""

_FIELDS: tuple[str, ...] = tuple(LedgerEntry.model_fields)
_JSON_FIELDS = frozenset({"artifact_references", "detail"})

_INSERT = (
    f"INSERT INTO ledger_entries ({', '.join(_FIELDS)}) "
    f"VALUES ({', '.join('?' for _ in _FIELDS)})"
)
_SELECT = f"SELECT {', '.join(_FIELDS)} FROM ledger_entries"

_DEPLOY_PASSED = f"{StageState.RUNNING.value}->{StageState.PASSED.value}"
_DEPLOY_FAILED = f"{StageState.RUNNING.value}->{StageState.FAILED.value}"


class LedgerIntegrityError(RuntimeError):
    """Raised when the hash chain is broken."""


class RunLedger:
    """Append-only, hash-chained run ledger.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        # Serializes read-latest-hash + insert so a run's chain never forks.
        self._append_lock = threading.Lock()
        with self._connect() as conn:
            conn.executescript(_SCHEMA)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        """Seal *entry* onto its run's chain and persist it.

        Returns the sealed entry with ``previous_entry_hash`` and
        ``entry_hash`` set. This is the ONLY write method.
        """
        with self._append_lock, self._connect() as conn:
            row = conn.execute(
                "SELECT entry_hash FROM ledger_entries WHERE run_id = ? "
                "ORDER BY seq DESC LIMIT 1",
                (entry.run_id,),
            ).fetchone()
            linked = entry.model_copy(
                update={"previous_entry_hash": row["entry_hash"] if row else "", "entry_hash": ""}
            )
            record = linked.model_dump(mode="json")
            record["entry_hash"] = compute_entry_hash(record)
            conn.execute(_INSERT, [self._to_column(f, record[f]) for f in _FIELDS])
        return LedgerEntry.model_validate(record)

    @staticmethod
    def _to_column(field: str, value: Any) -> Any:
        return json.dumps(value, sort_keys=True) if field in _JSON_FIELDS else value

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_run_entries(self, run_id: str) -> list[LedgerEntry]:
        """Return all ledger entries for a run, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(f"{_SELECT} WHERE run_id = ? ORDER BY seq", (run_id,)).fetchall()
        return [self._from_row(r) for r in rows]

    def get_all_run_ids(self) -> list[str]:
        """Return every recorded run_id, most recently started first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT run_id FROM ledger_entries GROUP BY run_id ORDER BY MIN(seq) DESC"
            ).fetchall()
        return [r["run_id"] for r in rows]

    def last_successful_deploy(
        self, function_name: str, alias_name: str
    ) -> DeployRecord | None:
        """Return the most recent deploy that left *alias_name* live, or None.

        A deploy whose alias write timed out but settled counts too: the
        run failed, yet the alias serves the version it published.
        """
        with self._connect() as conn:
            rows = conn.execute(
                f"{_SELECT} WHERE stage_kind = ? AND state_transition IN (?, ?) ORDER BY seq DESC",
                (StageKind.DEPLOY.value, _DEPLOY_PASSED, _DEPLOY_FAILED),
            ).fetchall()
        for row in rows:
            entry = self._from_row(row)
            if entry.state_transition == _DEPLOY_PASSED:
                deploy = entry.detail.get("deploy") or {}
            else:
                deploy = (entry.detail.get("failure") or {}).get("detail", {}).get("deploy") or {}
            if (deploy.get("function_name"), deploy.get("alias_name")) != (function_name, alias_name):
                continue
            return DeployRecord(
                run_id=entry.run_id,
                function_name=function_name,
                alias_name=alias_name,
                version=deploy["version"],
                previous_version=deploy.get("previous_version"),
                code_sha256=deploy.get("code_sha256", ""),
                deployed_at=entry.timestamp_utc,
            )
        return None

    @staticmethod
    def _from_row(row: sqlite3.Row) -> LedgerEntry:
        data = {f: json.loads(row[f]) if f in _JSON_FIELDS else row[f] for f in _FIELDS}
        return LedgerEntry.model_validate(data)

    # ------------------------------------------------------------------
    # Chain verification
    # ------------------------------------------------------------------

    def verify_chain(self, run_id: str) -> bool:
        """Re-derive every link of *run_id*'s chain.

        Returns True if intact; raises ``LedgerIntegrityError`` naming the
        first entry that was altered, removed from under its successor, or
        inserted out of order.
        """
        expected_previous = ""
        for entry in self.get_run_entries(run_id):
            if entry.previous_entry_hash != expected_previous:
                raise LedgerIntegrityError(
                    f"Chain broken at entry {entry.entry_id}: links to "
                    f"{entry.previous_entry_hash[:16] or '<start>'}, "
                    f"expected {expected_previous[:16] or '<start>'}"
                )
            recomputed = compute_entry_hash(entry.model_dump(mode="json"))
            if recomputed != entry.entry_hash:
                raise LedgerIntegrityError(
                    f"Tampered entry {entry.entry_id} ({entry.stage_id} "
                    f"{entry.state_transition}): content hash {recomputed[:16]} "
                    f"does not match sealed hash {entry.entry_hash[:16]}"
                )
            expected_previous = entry.entry_hash
        return True


def is_run_entry(entry: LedgerEntry) -> bool:
    """Whether *entry* records run-level status rather than a stage."""
    return entry.stage_id == RUN_STAGE_ID
