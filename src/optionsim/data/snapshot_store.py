"""
Snapshot Persistence

Durable key-value storage for the two persisted records ("ledger" and
"market"). Load / save / delete primitives only; the engine owns the record
semantics.

Key patterns:
- SnapshotStore: protocol implemented by every backend
- DeltaLakeSnapshotStore: one Delta Lake table per key, overwritten as a
  single-row table on every save (Last-Write-Wins at snapshot granularity)
- InMemorySnapshotStore: same protocol for tests and ephemeral runs
- Backend failures surface as PersistenceError

Table layout (all columns strings):
    key         record key
    payload     JSON payload
    source_id   engine instance that wrote the snapshot
    updated_at  ISO-8601 write time
"""

import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

import polars as pl
import pyarrow as pa
from deltalake import DeltaTable, write_deltalake
from loguru import logger

from optionsim.exceptions import PersistenceError

logger = logger.bind(component="SnapshotStore")

SNAPSHOT_SCHEMA = pa.schema(
    [
        pa.field("key", pa.string()),
        pa.field("payload", pa.string()),
        pa.field("source_id", pa.string()),
        pa.field("updated_at", pa.string()),
    ]
)


@dataclass(slots=True, frozen=True)
class StoredSnapshot:
    """
    A persisted record as read back from storage.

    Attributes:
        key: Record key
        payload: JSON payload
        source_id: Engine instance that wrote it
        updated_at: Write time
    """

    key: str
    payload: str
    source_id: str
    updated_at: datetime


@runtime_checkable
class SnapshotStore(Protocol):
    """Protocol for snapshot storage backends."""

    def load(self, key: str) -> Optional[StoredSnapshot]:
        """Return the stored snapshot, or None if the key was never written."""
        ...

    def save(self, key: str, payload: str, source_id: str, updated_at: datetime) -> None:
        """Replace the snapshot stored under key."""
        ...

    def delete(self, key: str) -> None:
        """Remove the snapshot stored under key (no-op when absent)."""
        ...


class DeltaLakeSnapshotStore:
    """
    Delta Lake backed snapshot store.

    Each key maps to its own table under base_path. Saves overwrite the whole
    table so readers always see exactly one row.

    Attributes:
        base_path: Directory holding one table per key
    """

    def __init__(self, base_path: str = "data/lake"):
        """
        Initialize store.

        Args:
            base_path: Directory for the Delta Lake tables
        """
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def table_path(self, key: str) -> Path:
        return self.base_path / f"snapshot_{key}"

    def load(self, key: str) -> Optional[StoredSnapshot]:
        """
        Read the snapshot for key.

        Raises:
            PersistenceError: If the table exists but cannot be read
        """
        path = self.table_path(key)
        if not DeltaTable.is_deltatable(str(path)):
            return None

        try:
            df = pl.read_delta(str(path))
        except Exception as e:
            raise PersistenceError(f"Failed to read snapshot table {path}: {e}", key=key) from e

        if df.height == 0:
            return None

        row = df.sort("updated_at", descending=True).row(0, named=True)
        try:
            updated_at = datetime.fromisoformat(row["updated_at"])
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Corrupt updated_at in {path}: {e}", key=key) from e

        return StoredSnapshot(
            key=row["key"],
            payload=row["payload"],
            source_id=row["source_id"] or "",
            updated_at=updated_at,
        )

    def save(self, key: str, payload: str, source_id: str, updated_at: datetime) -> None:
        """
        Overwrite the snapshot for key.

        Raises:
            PersistenceError: If the write fails
        """
        path = self.table_path(key)
        table = pa.Table.from_pylist(
            [
                {
                    "key": key,
                    "payload": payload,
                    "source_id": source_id,
                    "updated_at": updated_at.isoformat(),
                }
            ],
            schema=SNAPSHOT_SCHEMA,
        )

        try:
            write_deltalake(str(path), table, mode="overwrite")
        except Exception as e:
            raise PersistenceError(f"Failed to write snapshot table {path}: {e}", key=key) from e

        logger.debug(f"Saved snapshot '{key}' ({len(payload)} bytes) from {source_id}")

    def delete(self, key: str) -> None:
        """
        Drop the table for key.

        Raises:
            PersistenceError: If the table cannot be removed
        """
        path = self.table_path(key)
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise PersistenceError(f"Failed to delete snapshot table {path}: {e}", key=key) from e
        logger.info(f"✓ Deleted snapshot '{key}'")


class InMemorySnapshotStore:
    """Snapshot store kept in a dict; shared between engines in one process."""

    def __init__(self):
        self._snapshots: dict[str, StoredSnapshot] = {}

    def load(self, key: str) -> Optional[StoredSnapshot]:
        return self._snapshots.get(key)

    def save(self, key: str, payload: str, source_id: str, updated_at: datetime) -> None:
        self._snapshots[key] = StoredSnapshot(
            key=key, payload=payload, source_id=source_id, updated_at=updated_at
        )

    def delete(self, key: str) -> None:
        self._snapshots.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._snapshots
