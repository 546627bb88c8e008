"""Record-level store backends.

Responsibilities:
- Define the small CRUD contract (`RecordStore`) every persistence backend meets.
- Provide a JSON-file `LocalStore`, a Supabase-backed `RemoteStore`, and a
  `FallbackStore` that tries remote first and degrades to local on failure.
- Stamp records with strictly increasing ISO-8601 UTC timestamps.

Key types:
- `RecordStore`: protocol over plain `dict` rows keyed by table name.
- `LocalStore`, `RemoteStore`, `FallbackStore`: concrete backends.
- `MonotonicClock`: in-process timestamp source that never repeats.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
from pathlib import Path
import threading
from typing import Any, Mapping, Protocol
from uuid import uuid4

from supabase import Client, create_client

from ..errors import PersistenceDegraded, RecordNotFoundError
from ..telemetry.logger import log_event

Record = dict[str, Any]


class MonotonicClock:
    """Issue ISO-8601 UTC timestamps that strictly increase within one process."""

    def __init__(self) -> None:
        """Initialize with no previously issued timestamp."""

        self._last: datetime | None = None
        self._lock = threading.Lock()

    def now(self) -> str:
        """Return a timestamp strictly later than every earlier `now()` result."""

        with self._lock:
            current = datetime.now(timezone.utc)
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current.isoformat(timespec="microseconds")


def _created_at_key(record: Mapping[str, Any]) -> str:
    """Sort key ordering rows by creation timestamp, oldest first."""

    return str(record.get("created_at") or "")


class RecordStore(Protocol):
    """CRUD contract shared by every persistence backend."""

    def list(self, table: str) -> list[Record]:
        """Return all rows of a table ordered by creation time."""

    def create(self, table: str, fields: Mapping[str, Any]) -> Record:
        """Insert a row and return it with `id`, `created_at`, and `updated_at`."""

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Apply a partial update and return the full row.

        Raises:
            RecordNotFoundError: If no row has `record_id`.
        """

    def delete(self, table: str, record_id: str) -> None:
        """Delete a row; deleting an unknown id is a no-op."""


class LocalStore:
    """JSON-file record store with an authoritative in-memory copy.

    Each table lives in `<root>/<table>.json`. When `root` is `None` the store
    is memory-only. A failed file write is logged and the in-memory copy keeps
    serving reads for the rest of the process.
    """

    def __init__(self, root: Path | None = None, clock: MonotonicClock | None = None) -> None:
        """Initialize storage root and timestamp source."""

        self.root = root
        self._clock = clock or MonotonicClock()
        self._tables: dict[str, list[Record]] = {}
        self._lock = threading.RLock()

    def _table_path(self, table: str) -> Path | None:
        """Return the JSON file path backing a table."""

        if self.root is None:
            return None
        return self.root / f"{table}.json"

    def _rows(self, table: str) -> list[Record]:
        """Return the mutable in-memory rows for a table, loading from disk once."""

        if table in self._tables:
            return self._tables[table]

        rows: list[Record] = []
        path = self._table_path(table)
        if path is not None and path.exists():
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                log_event("WARNING", "store", "local_read_failed", table=table, error_type=type(exc).__name__)
                payload = []
            if isinstance(payload, list):
                rows = [dict(item) for item in payload if isinstance(item, dict) and "id" in item]
        self._tables[table] = rows
        return rows

    def _flush(self, table: str) -> None:
        """Write one table to disk, logging instead of raising on I/O failure."""

        path = self._table_path(table)
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(self._tables[table], ensure_ascii=False, indent=2, sort_keys=True),
                encoding="utf-8",
            )
        except OSError as exc:
            log_event("WARNING", "store", "local_write_failed", table=table, error_type=type(exc).__name__)

    def list(self, table: str) -> list[Record]:
        """Return copies of all rows ordered by creation time."""

        with self._lock:
            rows = sorted(self._rows(table), key=_created_at_key)
            return [dict(row) for row in rows]

    def create(self, table: str, fields: Mapping[str, Any]) -> Record:
        """Insert a row with a fresh uuid4 identifier."""

        with self._lock:
            now = self._clock.now()
            record: Record = {**fields, "id": str(fields.get("id") or uuid4()), "created_at": now, "updated_at": now}
            self._rows(table).append(record)
            self._flush(table)
            return dict(record)

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Merge fields into an existing row."""

        with self._lock:
            for row in self._rows(table):
                if row["id"] == record_id:
                    row.update({key: value for key, value in fields.items() if key not in {"id", "created_at"}})
                    row["updated_at"] = self._clock.now()
                    self._flush(table)
                    return dict(row)
        raise RecordNotFoundError(table, record_id)

    def upsert(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Update a row, or insert it under `record_id` when it is not known yet."""

        with self._lock:
            try:
                return self.update(table, record_id, fields)
            except RecordNotFoundError:
                return self.create(table, {**fields, "id": record_id})

    def delete(self, table: str, record_id: str) -> None:
        """Remove a row if present."""

        with self._lock:
            rows = self._rows(table)
            remaining = [row for row in rows if row["id"] != record_id]
            if len(remaining) == len(rows):
                return
            self._tables[table] = remaining
            self._flush(table)

    def contains(self, table: str, record_id: str) -> bool:
        """Return whether a row with `record_id` exists locally."""

        with self._lock:
            return any(row["id"] == record_id for row in self._rows(table))


class RemoteStore:
    """Supabase table store; every call is one PostgREST request."""

    def __init__(self, client: Client, clock: MonotonicClock | None = None) -> None:
        """Wrap an authenticated Supabase client."""

        self._client = client
        self._clock = clock or MonotonicClock()

    @classmethod
    def from_credentials(cls, url: str, key: str, clock: MonotonicClock | None = None) -> RemoteStore:
        """Create a store from a Supabase project URL and anon/service key."""

        return cls(create_client(url, key), clock=clock)

    @property
    def client(self) -> Client:
        """Expose the Supabase client for storage bucket access."""

        return self._client

    def list(self, table: str) -> list[Record]:
        """Select all rows ordered by `created_at` ascending."""

        response = self._client.table(table).select("*").order("created_at").execute()
        return [dict(row) for row in response.data or []]

    def create(self, table: str, fields: Mapping[str, Any]) -> Record:
        """Insert one row with client-issued id and timestamps."""

        now = self._clock.now()
        payload: Record = {**fields, "id": str(fields.get("id") or uuid4()), "created_at": now, "updated_at": now}
        response = self._client.table(table).insert(payload).execute()
        rows = response.data or []
        return dict(rows[0]) if rows else payload

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Update one row keyed by id in a single statement."""

        payload = {key: value for key, value in fields.items() if key not in {"id", "created_at"}}
        payload["updated_at"] = self._clock.now()
        response = self._client.table(table).update(payload).eq("id", record_id).execute()
        rows = response.data or []
        if not rows:
            raise RecordNotFoundError(table, record_id)
        return dict(rows[0])

    def delete(self, table: str, record_id: str) -> None:
        """Delete one row keyed by id."""

        self._client.table(table).delete().eq("id", record_id).execute()


class FallbackStore:
    """Try the remote store first and degrade to the local store on any failure.

    Writes that land locally overlay remote rows on later `list` calls, so the
    process keeps seeing its own writes while the remote backend is down.
    Remote failures are logged as `PersistenceDegraded` and counted.
    """

    def __init__(self, remote: RecordStore, local: LocalStore) -> None:
        """Initialize primary and fallback backends."""

        self.remote = remote
        self.local = local
        self.degraded_count = 0
        self._deleted: dict[str, set[str]] = {}

    def _degrade(self, operation: str, table: str, exc: Exception) -> None:
        """Log one remote failure as degraded persistence."""

        self.degraded_count += 1
        degraded = PersistenceDegraded(operation=operation, table=table, reason=type(exc).__name__)
        log_event(
            "WARNING",
            "store",
            "persistence_degraded",
            operation=degraded.operation,
            table=degraded.table,
            reason=degraded.reason,
        )

    def list(self, table: str) -> list[Record]:
        """Return remote rows overlaid with rows written locally."""

        local_rows = {row["id"]: row for row in self.local.list(table)}
        try:
            remote_rows = self.remote.list(table)
        except Exception as exc:
            self._degrade("list", table, exc)
            remote_rows = []

        merged: dict[str, Record] = {}
        for row in remote_rows:
            overlay = local_rows.pop(str(row["id"]), {})
            merged[str(row["id"])] = {**row, **overlay, "created_at": row.get("created_at", "")}
        merged.update(local_rows)
        deleted = self._deleted.get(table, set())
        rows = [row for record_id, row in merged.items() if record_id not in deleted]
        return sorted(rows, key=_created_at_key)

    def create(self, table: str, fields: Mapping[str, Any]) -> Record:
        """Insert remotely, or locally when the remote insert fails."""

        try:
            return self.remote.create(table, fields)
        except Exception as exc:
            self._degrade("create", table, exc)
            return self.local.create(table, fields)

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Update remotely, or record the update in the local overlay."""

        try:
            record = self.remote.update(table, record_id, fields)
        except RecordNotFoundError:
            if not self.local.contains(table, record_id):
                raise
            return self.local.update(table, record_id, fields)
        except Exception as exc:
            self._degrade("update", table, exc)
            return self.local.upsert(table, record_id, fields)

        if self.local.contains(table, record_id):
            self.local.update(table, record_id, fields)
        return record

    def delete(self, table: str, record_id: str) -> None:
        """Delete in both backends; remote failures hide the row for this process."""

        self.local.delete(table, record_id)
        try:
            self.remote.delete(table, record_id)
        except Exception as exc:
            self._degrade("delete", table, exc)
            self._deleted.setdefault(table, set()).add(record_id)
