"""
Durable key-value storage for vesting ledger state, backed by SQLite.

Values are serialized to JSON. A ledger operation touches several keys
(the schedule record, the reserved total, the enumeration index, the
beneficiary counter); ``commit`` writes them in a single SQLite
transaction so a crash never leaves half an operation on disk.

Key layout:
    ledger_meta                  {"token": ..., "owner": ..., "address": ...}
    schedule_count               number of schedules ever created
    schedule_index:<n>           schedule ID at enumeration position n
    schedule:<schedule_id>       VestingSchedule.to_dict()
    reserved_total               aggregate unreleased entitlement
    beneficiary_count:<address>  per-beneficiary sequence counter
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .exceptions import StorageError
from .schedule import VestingSchedule

logger = logging.getLogger(__name__)

META_KEY = "ledger_meta"
SCHEDULE_COUNT_KEY = "schedule_count"
RESERVED_TOTAL_KEY = "reserved_total"


def schedule_key(schedule_id: str) -> str:
    return f"schedule:{schedule_id}"


def schedule_index_key(index: int) -> str:
    return f"schedule_index:{index}"


def beneficiary_count_key(beneficiary: str) -> str:
    return f"beneficiary_count:{beneficiary}"


@dataclass
class LedgerState:
    """Ledger state as loaded from the store."""

    meta: Dict[str, str]
    schedule_ids: List[str] = field(default_factory=list)
    schedules: Dict[str, VestingSchedule] = field(default_factory=dict)
    reserved_total: int = 0
    beneficiary_counts: Dict[str, int] = field(default_factory=dict)


class LedgerStore:
    """
    Persistent key-value store for a single vesting ledger.

    Usage:
        with LedgerStore(Path("data/vesting/ledger.db")) as store:
            ledger = VestingLedger(token, owner, store=store)
    """

    def __init__(self, db_path: Union[str, Path]):
        """
        Open (and create if needed) the SQLite database at ``db_path``.

        Args:
            db_path: Path to the SQLite database file. The directory
                     will be created if it does not exist.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None

        try:
            self._conn = sqlite3.connect(self.db_path, isolation_level="EXCLUSIVE")
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=FULL;")
            self._create_table()
        except sqlite3.Error as exc:
            logger.error(
                "Ledger store connection failed: %s",
                exc,
                extra={"event": "storage.open_failed", "path": str(self.db_path)},
            )
            raise StorageError(f"Cannot open ledger store {self.db_path}: {exc}") from exc

    def _create_table(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS key_value_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError(f"Ledger store {self.db_path} is closed")
        return self._conn

    # ------------------------------------------------------------------
    # Key-value primitives
    # ------------------------------------------------------------------
    def get(self, key: str, default: Any | None = None) -> Any:
        """
        Retrieve a value by key.

        Args:
            key: The key of the data to retrieve.
            default: The value to return if the key is not found.

        Returns:
            The deserialized value, or ``default``.
        """
        try:
            row = self._connection().execute(
                "SELECT value FROM key_value_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read key '{key}': {exc}") from exc
        if row is None:
            return default
        return json.loads(row[0])

    def get_prefix(self, prefix: str) -> Dict[str, Any]:
        """Return every key starting with ``prefix`` mapped to its value."""
        try:
            rows = self._connection().execute(
                "SELECT key, value FROM key_value_store WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to scan prefix '{prefix}': {exc}") from exc
        return {key: json.loads(value) for key, value in rows}

    def set(self, key: str, value: Any) -> None:
        """Save or update a single value."""
        self.commit({key: value})

    def commit(self, updates: Mapping[str, Any]) -> None:
        """
        Write all ``updates`` atomically.

        Args:
            updates: Mapping of key to JSON-serializable value

        Raises:
            StorageError: If serialization or the write fails; nothing
                is written in that case.
        """
        if not updates:
            return
        try:
            rows = [(key, json.dumps(value)) for key, value in updates.items()]
            with self._connection() as conn:
                conn.executemany(
                    """
                    INSERT INTO key_value_store (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    rows,
                )
        except (sqlite3.Error, TypeError, ValueError) as exc:
            # TypeError/ValueError for values that can't be JSON serialized
            logger.error(
                "Ledger store commit failed: %s",
                exc,
                extra={"event": "storage.commit_failed", "keys": len(updates)},
            )
            raise StorageError(f"Failed to commit {len(updates)} keys: {exc}") from exc

    # ------------------------------------------------------------------
    # Ledger state
    # ------------------------------------------------------------------
    def load_state(self) -> Optional[LedgerState]:
        """
        Load the full ledger state, or None if the store is empty.

        Raises:
            StorageError: If the enumeration index references a missing
                schedule record.
        """
        meta = self.get(META_KEY)
        if meta is None:
            return None

        count = int(self.get(SCHEDULE_COUNT_KEY, 0))
        index = self.get_prefix("schedule_index:")
        records = self.get_prefix("schedule:")

        state = LedgerState(meta=meta, reserved_total=int(self.get(RESERVED_TOTAL_KEY, 0)))
        for position in range(count):
            schedule_id = index.get(schedule_index_key(position))
            record = records.get(schedule_key(schedule_id)) if schedule_id else None
            if record is None:
                raise StorageError(
                    f"Ledger store {self.db_path} is missing schedule at index {position}"
                )
            state.schedule_ids.append(schedule_id)
            state.schedules[schedule_id] = VestingSchedule.from_dict(record)

        prefix = "beneficiary_count:"
        for key, value in self.get_prefix(prefix).items():
            state.beneficiary_counts[key[len(prefix):]] = int(value)

        logger.info(
            "Loaded ledger state",
            extra={
                "event": "storage.state_loaded",
                "schedules": count,
                "path": str(self.db_path),
            },
        )
        return state

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "LedgerStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
