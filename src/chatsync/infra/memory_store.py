"""In-memory Store for tests and local development.

Enforces the same uniqueness and cascade rules as the PostgreSQL schema so
the reconciliation paths behave identically. Not for production: nothing is
persisted across restarts.
"""

from __future__ import annotations

import copy
import threading
import uuid
from typing import Any

from chatsync.infra.store import DuplicateRecordError, schema_for
from chatsync.infra.time import utc_now


class MemoryStore:
    """Dict-backed Store. Each operation is atomic under one lock."""

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _table(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._rows.setdefault(collection, {})

    @staticmethod
    def _matches(row: dict[str, Any], filters: dict[str, Any]) -> bool:
        return all(row.get(k) == v for k, v in filters.items())

    def _check_unique(self, collection: str, candidate: dict[str, Any]) -> None:
        schema = schema_for(collection)
        for constraint in schema.unique:
            values = {col: candidate.get(col) for col in constraint}
            if any(v is None for v in values.values()):
                continue
            for row in self._table(collection).values():
                if row["id"] != candidate["id"] and self._matches(row, values):
                    raise DuplicateRecordError(collection, constraint)

    def get(self, collection: str, row_id: str) -> dict[str, Any] | None:
        schema_for(collection)
        with self._lock:
            row = self._table(collection).get(str(row_id))
            return copy.deepcopy(row) if row is not None else None

    def find_one(self, collection: str, **filters: Any) -> dict[str, Any] | None:
        schema_for(collection, filters)
        with self._lock:
            for row in self._table(collection).values():
                if self._matches(row, filters):
                    return copy.deepcopy(row)
        return None

    def insert(self, collection: str, values: dict[str, Any]) -> dict[str, Any]:
        schema = schema_for(collection, values)
        now = utc_now()
        row: dict[str, Any] = {col: None for col in schema.columns}
        row.update(copy.deepcopy(schema.defaults))
        row.update(copy.deepcopy(values))
        row["id"] = str(values.get("id") or uuid.uuid4())
        row["created_at"] = values.get("created_at") or now
        row["updated_at"] = now
        with self._lock:
            self._check_unique(collection, row)
            self._table(collection)[row["id"]] = row
            return copy.deepcopy(row)

    def update(self, collection: str, row_id: str, changes: dict[str, Any]) -> None:
        schema_for(collection, changes)
        with self._lock:
            row = self._table(collection).get(str(row_id))
            if row is None:
                return
            candidate = {**row, **copy.deepcopy(changes)}
            self._check_unique(collection, candidate)
            candidate["updated_at"] = utc_now()
            self._table(collection)[row["id"]] = candidate

    def delete(self, collection: str, row_id: str) -> None:
        schema_for(collection)
        with self._lock:
            self._delete_locked(collection, str(row_id))

    def _delete_locked(self, collection: str, row_id: str) -> None:
        if self._table(collection).pop(row_id, None) is None:
            return
        for child, foreign_key in schema_for(collection).cascade:
            doomed = [
                r["id"] for r in self._table(child).values() if r.get(foreign_key) == row_id
            ]
            for child_id in doomed:
                self._delete_locked(child, child_id)

    def count(self, collection: str, **filters: Any) -> int:
        schema_for(collection, filters)
        with self._lock:
            return sum(1 for row in self._table(collection).values() if self._matches(row, filters))
