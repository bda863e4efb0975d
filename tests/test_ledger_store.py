"""Tests for ledger store adapters: in-memory semantics and Supabase table mapping."""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from backend.repositories.ledger_store import (
    PROJECTS,
    USERS,
    InMemoryLedgerStore,
    SupabaseLedgerStore,
    files_path,
    funding_history_path,
)


def test_in_memory_store_returns_copies_with_ids() -> None:
    store = InMemoryLedgerStore(seed={USERS: {"u1": {"fullName": "Ada", "tags": ["a"]}}})

    record = store.get_by_id(USERS, "u1")
    record["tags"].append("mutated")

    assert record["id"] == "u1"
    assert store.get_by_id(USERS, "u1")["tags"] == ["a"]
    assert store.get_by_id(USERS, "missing") is None


def test_in_memory_insert_generates_ids_and_query_filters() -> None:
    store = InMemoryLedgerStore()

    first = store.insert(PROJECTS, {"userId": "u1"})
    second = store.insert(PROJECTS, {"userId": "u2"})

    assert first != second
    assert [record["id"] for record in store.query_by_equality(PROJECTS, "userId", "u2")] == [second]
    assert len(store.list_all(PROJECTS)) == 2
    assert store.list_all("unknown") == []


def test_in_memory_update_fields_merges_and_requires_record() -> None:
    store = InMemoryLedgerStore()
    store.put(PROJECTS, "p1", {"availableFunds": 1, "title": "T"})

    store.update_fields(PROJECTS, "p1", {"availableFunds": 5})

    assert store.get_by_id(PROJECTS, "p1") == {"id": "p1", "availableFunds": 5, "title": "T"}
    with pytest.raises(RuntimeError, match="Record not found"):
        store.update_fields(PROJECTS, "missing", {"availableFunds": 5})


def _supabase_store(captured: list[dict[str, object]], rows: list[dict[str, object]]) -> SupabaseLedgerStore:
    def _get_rows(**kwargs):
        captured.append({"op": "get", **kwargs})
        return rows, None

    def _post_rows(**kwargs):
        captured.append({"op": "post", **kwargs})
        return rows

    def _patch_rows(**kwargs):
        captured.append({"op": "patch", **kwargs})
        return rows

    fake_client = SimpleNamespace(get_rows=_get_rows, post_rows=_post_rows, patch_rows=_patch_rows)
    return SupabaseLedgerStore(client=fake_client)  # type: ignore[arg-type]


def test_supabase_store_maps_nested_paths_to_parent_filters() -> None:
    captured: list[dict[str, object]] = []
    store = _supabase_store(
        captured,
        [{"id": 7, "file_name": "a.csv", "uploaded_at": "2025-01-22T08:30:00Z", "uploaded_by": "u1"}],
    )

    records = store.list_all(files_path("p1", "f1"))

    assert captured[0]["table"] == "files"
    assert captured[0]["query"] == [("select", "*"), ("project_id", "eq.p1"), ("folder_id", "eq.f1")]
    assert records == [
        {
            "id": "7",
            "fileName": "a.csv",
            "uploadedAt": datetime(2025, 1, 22, 8, 30, tzinfo=timezone.utc),
            "uploadedBy": "u1",
        }
    ]


def test_supabase_store_query_by_equality_uses_snake_case_columns() -> None:
    captured: list[dict[str, object]] = []
    store = _supabase_store(captured, [])

    assert store.query_by_equality(PROJECTS, "userId", "u1") == []
    assert store.get_by_id(USERS, "u1") is None

    assert captured[0]["query"] == [("select", "*"), ("user_id", "eq.u1")]
    assert captured[1]["table"] == "users"
    assert captured[1]["query"] == [("select", "*"), ("id", "eq.u1")]


def test_supabase_store_insert_adds_parent_columns() -> None:
    captured: list[dict[str, object]] = []
    store = _supabase_store(captured, [{"id": "h9"}])

    new_id = store.insert(funding_history_path("p1"), {"amount": 5, "totalAfterUpdate": 5, "type": "funding"})

    assert new_id == "h9"
    assert captured[0]["table"] == "funding_history"
    assert captured[0]["payload"] == {"amount": 5, "total_after_update": 5, "type": "funding", "project_id": "p1"}


def test_supabase_store_insert_without_returned_row_fails() -> None:
    store = _supabase_store([], [])

    with pytest.raises(RuntimeError, match="did not return created row"):
        store.insert(PROJECTS, {"title": "x"})


def test_supabase_store_update_fields_patches_by_id() -> None:
    captured: list[dict[str, object]] = []
    store = _supabase_store(captured, [{"id": "p1"}])

    store.update_fields(PROJECTS, "p1", {"availableFunds": 10, "usedFunds": 2})

    assert captured[0]["op"] == "patch"
    assert captured[0]["query"] == {"id": "eq.p1", "select": "id"}
    assert captured[0]["payload"] == {"available_funds": 10, "used_funds": 2}


def test_supabase_store_update_missing_record_fails() -> None:
    store = _supabase_store([], [])

    with pytest.raises(RuntimeError, match="Record not found"):
        store.update_fields(PROJECTS, "missing", {"availableFunds": 1})


def test_supabase_store_rejects_unknown_collections() -> None:
    store = _supabase_store([], [])

    with pytest.raises(ValueError, match="Unsupported collection path"):
        store.list_all("projects/p1/unknown")
