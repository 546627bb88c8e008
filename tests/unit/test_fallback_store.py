"""Unit tests for remote-first persistence with local degradation."""

from __future__ import annotations

from typing import Any, Mapping

from chaptercast.errors import RecordNotFoundError
from chaptercast.store.backends import FallbackStore, LocalStore, Record


class _FlakyRemote:
    """Remote backend stub that can be switched offline."""

    def __init__(self) -> None:
        self.online = True
        self.rows = LocalStore()

    def _check(self) -> None:
        if not self.online:
            raise ConnectionError("remote unreachable")

    def list(self, table: str) -> list[Record]:
        self._check()
        return self.rows.list(table)

    def create(self, table: str, fields: Mapping[str, Any]) -> Record:
        self._check()
        return self.rows.create(table, fields)

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        self._check()
        return self.rows.update(table, record_id, fields)

    def delete(self, table: str, record_id: str) -> None:
        self._check()
        self.rows.delete(table, record_id)


def test_fallback_store_uses_remote_while_available() -> None:
    """Healthy remote writes should not touch the local store."""

    remote = _FlakyRemote()
    store = FallbackStore(remote, LocalStore())

    created = store.create("projects", {"name": "Remote"})

    assert remote.rows.contains("projects", created["id"])
    assert store.local.list("projects") == []
    assert store.degraded_count == 0


def test_fallback_store_degrades_create_and_update_to_local() -> None:
    """Remote failures should be absorbed and the process should see its own writes."""

    remote = _FlakyRemote()
    store = FallbackStore(remote, LocalStore())
    existing = store.create("render_jobs", {"status": "pending"})

    remote.online = False
    created = store.create("render_jobs", {"status": "pending"})
    updated = store.update("render_jobs", existing["id"], {"status": "processing"})

    assert store.degraded_count == 2
    assert updated["status"] == "processing"
    remote.online = True
    rows = {row["id"]: row for row in store.list("render_jobs")}
    assert rows[existing["id"]]["status"] == "processing"
    assert rows[existing["id"]]["created_at"] == existing["created_at"]
    assert created["id"] in rows


def test_fallback_store_list_falls_back_to_local_rows() -> None:
    """Listing should return local rows when the remote list fails."""

    remote = _FlakyRemote()
    store = FallbackStore(remote, LocalStore())
    remote.online = False
    created = store.create("projects", {"name": "Offline"})

    assert [row["id"] for row in store.list("projects")] == [created["id"]]


def test_fallback_store_unknown_id_propagates_not_found() -> None:
    """Unknown ids should raise so the facade can synthesize a record."""

    store = FallbackStore(_FlakyRemote(), LocalStore())

    try:
        store.update("projects", "missing", {"name": "x"})
    except RecordNotFoundError as exc:
        assert exc.record_id == "missing"
    else:
        raise AssertionError("expected RecordNotFoundError")


def test_fallback_store_hides_rows_whose_remote_delete_failed() -> None:
    """A degraded delete should hide the row for the rest of the process."""

    remote = _FlakyRemote()
    store = FallbackStore(remote, LocalStore())
    created = store.create("projects", {"name": "Doomed"})

    remote.online = False
    store.delete("projects", created["id"])
    remote.online = True

    assert store.list("projects") == []
    assert store.degraded_count == 1
