"""PostgreSQL Store backed by psycopg2 (raw SQL, no ORM).

Table and column names come only from the COLLECTIONS whitelist; values are
always bound as parameters. Every call opens its own short transaction via
txn(), so a unique-index violation surfaces immediately as
DuplicateRecordError instead of poisoning a longer unit of work.
"""

from __future__ import annotations

from typing import Any

from psycopg2 import errors as pg_errors

from chatsync.infra.db import txn
from chatsync.infra.store import DuplicateRecordError, schema_for


def _where(filters: dict[str, Any]) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in filters.items():
        if value is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = %s")
            params.append(value)
    return (" AND ".join(clauses) or "TRUE"), params


def _normalize(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    result = dict(row)
    for key in ("id", "inbox_id", "contact_id", "conversation_id", "organization_id"):
        if result.get(key) is not None:
            result[key] = str(result[key])
    return result


class PostgresStore:
    """Store implementation over the chat_* tables."""

    def get(self, collection: str, row_id: str) -> dict[str, Any] | None:
        schema = schema_for(collection)
        with txn() as cur:
            cur.execute(f"SELECT * FROM {schema.table} WHERE id = %s", (row_id,))
            return _normalize(cur.fetchone())

    def find_one(self, collection: str, **filters: Any) -> dict[str, Any] | None:
        schema = schema_for(collection, filters)
        where, params = _where(filters)
        with txn() as cur:
            cur.execute(f"SELECT * FROM {schema.table} WHERE {where} LIMIT 1", params)
            return _normalize(cur.fetchone())

    def insert(self, collection: str, values: dict[str, Any]) -> dict[str, Any]:
        schema = schema_for(collection, values)
        columns = list(values)
        placeholders = ", ".join(["%s"] * len(columns))
        query = (
            f"INSERT INTO {schema.table} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) RETURNING *"
        )
        try:
            with txn() as cur:
                cur.execute(query, [values[c] for c in columns])
                return _normalize(cur.fetchone())  # type: ignore[return-value]
        except pg_errors.UniqueViolation as exc:
            raise DuplicateRecordError(collection, (exc.diag.constraint_name or "",)) from exc

    def update(self, collection: str, row_id: str, changes: dict[str, Any]) -> None:
        if not changes:
            return
        schema = schema_for(collection, changes)
        columns = list(changes)
        assignments = ", ".join(f"{c} = %s" for c in columns)
        query = f"UPDATE {schema.table} SET {assignments}, updated_at = now() WHERE id = %s"
        try:
            with txn() as cur:
                cur.execute(query, [changes[c] for c in columns] + [row_id])
        except pg_errors.UniqueViolation as exc:
            raise DuplicateRecordError(collection, (exc.diag.constraint_name or "",)) from exc

    def delete(self, collection: str, row_id: str) -> None:
        # Children go through ON DELETE CASCADE foreign keys
        schema = schema_for(collection)
        with txn() as cur:
            cur.execute(f"DELETE FROM {schema.table} WHERE id = %s", (row_id,))

    def count(self, collection: str, **filters: Any) -> int:
        schema = schema_for(collection, filters)
        where, params = _where(filters)
        with txn() as cur:
            cur.execute(f"SELECT COUNT(*) AS n FROM {schema.table} WHERE {where}", params)
            row = cur.fetchone()
            return int(row["n"]) if row else 0
