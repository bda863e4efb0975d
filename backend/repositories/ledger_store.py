"""Ledger store interface and adapters for project, funding and review records.

Collections are addressed by slash paths. Nested collections embed their
parent ids: ``projects/<projectId>/fundingHistory``,
``projects/<projectId>/folders`` and
``projects/<projectId>/folders/<folderId>/files``.
"""

from __future__ import annotations

import copy
import re
import threading
from datetime import datetime
from typing import Any, Protocol
from uuid import uuid4

from backend.db.supabase_client import SupabaseClient


PROJECTS = "projects"
USERS = "users"
REVIEWS = "reviews"
FUNDING_OPPORTUNITIES = "funding"


def funding_history_path(project_id: str) -> str:
    return f"{PROJECTS}/{project_id}/fundingHistory"


def folders_path(project_id: str) -> str:
    return f"{PROJECTS}/{project_id}/folders"


def files_path(project_id: str, folder_id: str) -> str:
    return f"{PROJECTS}/{project_id}/folders/{folder_id}/files"


class LedgerStore(Protocol):
    def get_by_id(self, collection: str, record_id: str) -> dict[str, Any] | None:
        """Return one record with its ``id`` or None when absent."""

    def query_by_equality(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        """Return records whose ``field`` equals ``value``."""

    def list_all(self, collection: str) -> list[dict[str, Any]]:
        """Return every record of a collection."""

    def insert(self, collection: str, record: dict[str, Any]) -> str:
        """Insert one record and return its generated id."""

    def update_fields(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        """Merge ``fields`` into an existing record."""


class InMemoryLedgerStore:
    """In-memory ledger store used by tests/dev."""

    def __init__(self, seed: dict[str, dict[str, dict[str, Any]]] | None = None) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()
        for collection, records in (seed or {}).items():
            for record_id, record in records.items():
                self.put(collection, record_id, record)

    def put(self, collection: str, record_id: str, record: dict[str, Any]) -> None:
        """Store a record under a caller-chosen id (fixtures and seeding)."""
        with self._lock:
            stored = copy.deepcopy(record)
            stored.pop("id", None)
            self._collections.setdefault(collection, {})[record_id] = stored

    def _materialize(self, record_id: str, record: dict[str, Any]) -> dict[str, Any]:
        return {"id": record_id, **copy.deepcopy(record)}

    def get_by_id(self, collection: str, record_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._collections.get(collection, {}).get(record_id)
            if record is None:
                return None
            return self._materialize(record_id, record)

    def query_by_equality(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        with self._lock:
            return [
                self._materialize(record_id, record)
                for record_id, record in self._collections.get(collection, {}).items()
                if record.get(field) == value
            ]

    def list_all(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            return [
                self._materialize(record_id, record)
                for record_id, record in self._collections.get(collection, {}).items()
            ]

    def insert(self, collection: str, record: dict[str, Any]) -> str:
        record_id = str(uuid4())
        self.put(collection, record_id, record)
        return record_id

    def update_fields(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        with self._lock:
            record = self._collections.get(collection, {}).get(record_id)
            if record is None:
                raise RuntimeError(f"Record not found: {collection}/{record_id}")
            record.update(copy.deepcopy(fields))


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

_NESTED_TABLES: tuple[tuple[re.Pattern[str], str, tuple[str, ...]], ...] = (
    (re.compile(r"^projects/([^/]+)/fundingHistory$"), "funding_history", ("project_id",)),
    (re.compile(r"^projects/([^/]+)/folders$"), "folders", ("project_id",)),
    (re.compile(r"^projects/([^/]+)/folders/([^/]+)/files$"), "files", ("project_id", "folder_id")),
)
_TOP_LEVEL_TABLES = {
    PROJECTS: "projects",
    USERS: "users",
    REVIEWS: "reviews",
    FUNDING_OPPORTUNITIES: "funding_opportunities",
}


def _to_column(field: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", field).lower()


def _to_field(column: str) -> str:
    head, *rest = column.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _parse_timestamp(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value


class SupabaseLedgerStore:
    """Supabase-backed ledger store mapping collection paths onto tables.

    Field names are camelCase in records and snake_case in columns; ``*At``
    fields come back as timezone-aware datetimes.
    """

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    def _resolve(self, collection: str) -> tuple[str, dict[str, str]]:
        table = _TOP_LEVEL_TABLES.get(collection)
        if table is not None:
            return table, {}
        for pattern, nested_table, parent_columns in _NESTED_TABLES:
            match = pattern.match(collection)
            if match:
                return nested_table, dict(zip(parent_columns, match.groups()))
        raise ValueError(f"Unsupported collection path: {collection}")

    def _record_from_row(self, row: dict[str, Any]) -> dict[str, Any]:
        record: dict[str, Any] = {}
        for column, value in row.items():
            field = _to_field(column)
            record[field] = _parse_timestamp(value) if field.endswith("At") else value
        if "id" in record and record["id"] is not None:
            record["id"] = str(record["id"])
        return record

    def _row_from_record(self, record: dict[str, Any]) -> dict[str, Any]:
        return {_to_column(field): value for field, value in record.items() if field != "id"}

    def _select(self, collection: str, filters: dict[str, Any]) -> list[dict[str, Any]]:
        table, parent_filters = self._resolve(collection)
        query: list[tuple[str, str | int]] = [("select", "*")]
        query.extend((column, f"eq.{value}") for column, value in parent_filters.items())
        query.extend((column, f"eq.{value}") for column, value in filters.items())
        rows, _ = self._client.get_rows(table=table, query=query, with_count=False, use_anon_key=False)
        return [self._record_from_row(row) for row in rows]

    def get_by_id(self, collection: str, record_id: str) -> dict[str, Any] | None:
        rows = self._select(collection, {"id": record_id})
        return rows[0] if rows else None

    def query_by_equality(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        return self._select(collection, {_to_column(field): value})

    def list_all(self, collection: str) -> list[dict[str, Any]]:
        return self._select(collection, {})

    def insert(self, collection: str, record: dict[str, Any]) -> str:
        table, parent_filters = self._resolve(collection)
        payload = {**self._row_from_record(record), **parent_filters}
        rows = self._client.post_rows(table=table, payload=payload, use_anon_key=False)
        if not rows or rows[0].get("id") is None:
            raise RuntimeError(f"Supabase did not return created row for {table}")
        return str(rows[0]["id"])

    def update_fields(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        table, parent_filters = self._resolve(collection)
        query: dict[str, str | int] = {"id": f"eq.{record_id}", "select": "id"}
        query.update({column: f"eq.{value}" for column, value in parent_filters.items()})
        rows = self._client.patch_rows(
            table=table,
            query=query,
            payload=self._row_from_record(fields),
            use_anon_key=False,
        )
        if not rows:
            raise RuntimeError(f"Record not found: {collection}/{record_id}")
