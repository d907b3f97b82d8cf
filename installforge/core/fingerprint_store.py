"""Artifact fingerprint store: SQLite-backed, with an in-memory twin.

The store is the only mutable resource shared across a run. Reads happen
during planning, before any write of the same run. Writes are serialized
by a lock held for the whole transaction, so a batch of records for one
target lands atomically.

Layout:
- one row per (scope, location)
- scope ``""`` holds output artifacts keyed by location
- scope ``<target_id>`` holds that target's last observed input
  signatures plus its run marker
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

from installforge.models.fingerprints import ARTIFACT_SCOPE, FingerprintRecord


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_FINGERPRINTS = """
CREATE TABLE IF NOT EXISTS fingerprints (
    scope        TEXT NOT NULL,
    location     TEXT NOT NULL,
    signature    TEXT NOT NULL,
    recorded_at  TEXT NOT NULL,
    PRIMARY KEY (scope, location)
);
"""

_UPSERT = """
INSERT INTO fingerprints (scope, location, signature, recorded_at)
VALUES (?, ?, ?, ?)
ON CONFLICT(scope, location) DO UPDATE SET
    signature = excluded.signature,
    recorded_at = excluded.recorded_at
"""


class FingerprintStoreError(RuntimeError):
    """Raised when the fingerprint store cannot be opened, read or written."""


@runtime_checkable
class FingerprintStore(Protocol):
    """Persistent key-value medium for fingerprint records."""

    def get(self, location: str, scope: str = ARTIFACT_SCOPE) -> FingerprintRecord | None:
        """Return the record for *location* in *scope*, or None."""
        ...

    def get_scope(self, scope: str) -> dict[str, FingerprintRecord]:
        """Return all records of a scope keyed by location."""
        ...

    def record_many(
        self,
        records: Iterable[FingerprintRecord],
        replace_scopes: Iterable[str] = (),
    ) -> None:
        """Insert or replace records atomically.

        Scopes in *replace_scopes* are emptied first, in the same transaction.
        """
        ...

    def forget_scope(self, scope: str) -> int:
        """Delete all records of a scope; return how many were removed."""
        ...

    def clear(self) -> None:
        """Delete every record."""
        ...


class InMemoryFingerprintStore:
    """Dict-backed store for tests and throwaway runs."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], FingerprintRecord] = {}
        self._lock = threading.Lock()
        self.write_count = 0

    def get(self, location: str, scope: str = ARTIFACT_SCOPE) -> FingerprintRecord | None:
        return self._records.get((scope, location))

    def get_scope(self, scope: str) -> dict[str, FingerprintRecord]:
        return {
            loc: rec for (sc, loc), rec in self._records.items() if sc == scope
        }

    def record_many(
        self,
        records: Iterable[FingerprintRecord],
        replace_scopes: Iterable[str] = (),
    ) -> None:
        with self._lock:
            for scope in set(replace_scopes):
                for key in [k for k in self._records if k[0] == scope]:
                    del self._records[key]
            for record in records:
                self._records[(record.scope, record.location)] = record
            self.write_count += 1

    def forget_scope(self, scope: str) -> int:
        with self._lock:
            keys = [key for key in self._records if key[0] == scope]
            for key in keys:
                del self._records[key]
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


class SqliteFingerprintStore:
    """Fingerprint store persisted in a SQLite database file.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    create_dir:
        Create the parent directory when missing instead of failing.
    """

    def __init__(self, db_path: Path, *, create_dir: bool = True) -> None:
        self._db_path = Path(db_path)
        self._write_lock = threading.Lock()
        self._prepare_dir(self._db_path.parent, create_dir)
        self._init_schema()

    @staticmethod
    def _prepare_dir(path: Path, create_dir: bool) -> None:
        if not path.exists():
            if not create_dir:
                raise FingerprintStoreError(
                    f"Fingerprint cache directory '{path}' does not exist"
                )
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise FingerprintStoreError(
                    f"Failed to create fingerprint cache directory '{path}': {exc}"
                ) from exc
        if not path.is_dir():
            raise FingerprintStoreError(
                f"Fingerprint cache directory '{path}' exists but is not a directory"
            )

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute(_CREATE_FINGERPRINTS)
                conn.commit()
        except sqlite3.Error as exc:
            raise FingerprintStoreError(
                f"Failed to open fingerprint database '{self._db_path}': {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, location: str, scope: str = ARTIFACT_SCOPE) -> FingerprintRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT scope, location, signature, recorded_at FROM fingerprints "
                "WHERE scope = ? AND location = ?",
                (scope, location),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def get_scope(self, scope: str) -> dict[str, FingerprintRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT scope, location, signature, recorded_at FROM fingerprints "
                "WHERE scope = ? ORDER BY location",
                (scope,),
            ).fetchall()
        return {row[1]: self._row_to_record(row) for row in rows}

    def scopes(self) -> list[str]:
        """Return all distinct scopes, artifact scope included."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT scope FROM fingerprints ORDER BY scope"
            ).fetchall()
        return [row[0] for row in rows]

    def __len__(self) -> int:
        with self._connect() as conn:
            (count,) = conn.execute("SELECT COUNT(*) FROM fingerprints").fetchone()
        return int(count)

    # ------------------------------------------------------------------
    # Writes (serialized)
    # ------------------------------------------------------------------

    def record_many(
        self,
        records: Iterable[FingerprintRecord],
        replace_scopes: Iterable[str] = (),
    ) -> None:
        scopes = sorted(set(replace_scopes))
        rows = [
            (r.scope, r.location, r.signature, r.recorded_at.isoformat())
            for r in records
        ]
        if not rows and not scopes:
            return
        with self._write_lock:
            try:
                with self._connect() as conn:
                    conn.executemany(
                        "DELETE FROM fingerprints WHERE scope = ?",
                        [(scope,) for scope in scopes],
                    )
                    conn.executemany(_UPSERT, rows)
                    conn.commit()
            except sqlite3.Error as exc:
                raise FingerprintStoreError(
                    f"Failed to write {len(rows)} fingerprint(s): {exc}"
                ) from exc

    def forget_scope(self, scope: str) -> int:
        with self._write_lock:
            with self._connect() as conn:
                cursor = conn.execute("DELETE FROM fingerprints WHERE scope = ?", (scope,))
                conn.commit()
        return cursor.rowcount

    def clear(self) -> None:
        with self._write_lock:
            with self._connect() as conn:
                conn.execute("DELETE FROM fingerprints")
                conn.commit()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_record(row: tuple) -> FingerprintRecord:
        scope, location, signature, recorded_at = row
        return FingerprintRecord(
            scope=scope,
            location=location,
            signature=signature,
            recorded_at=datetime.fromisoformat(recorded_at),
        )
