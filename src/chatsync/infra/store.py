"""Collection store contract shared by the PostgreSQL and in-memory backends.

The sync engine never runs multi-step transactions: every operation below is
one short write or read. Idempotency comes from the uniqueness constraints
declared in COLLECTIONS, which both backends enforce and report as
DuplicateRecordError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


class DuplicateRecordError(Exception):
    """Raised when a write violates a uniqueness constraint."""

    def __init__(self, collection: str, constraint: tuple[str, ...]) -> None:
        super().__init__(f"duplicate {collection} on {', '.join(constraint)}")
        self.collection = collection
        self.constraint = constraint


@dataclass(frozen=True)
class CollectionSchema:
    """Table name, writable columns and uniqueness rules of a collection."""

    table: str
    columns: frozenset[str]
    unique: tuple[tuple[str, ...], ...] = ()
    # Child collections removed with the parent: (collection, foreign key)
    cascade: tuple[tuple[str, str], ...] = ()
    # Column defaults applied by the database on insert
    defaults: dict[str, Any] = field(default_factory=dict)


COLLECTIONS: dict[str, CollectionSchema] = {
    "inboxes": CollectionSchema(
        table="chat_inboxes",
        columns=frozenset({
            "organization_id", "name", "channel_type", "instance_name",
            "provider_base_url", "connection_status", "qr_code",
            "profile_name", "profile_pic_url", "phone_number", "owner_jid",
            "contacts_count", "conversations_count",
        }),
        unique=(("instance_name",),),
        cascade=(("contacts", "inbox_id"), ("conversations", "inbox_id")),
        defaults={
            "channel_type": "whatsapp",
            "connection_status": "pending",
            "contacts_count": 0,
            "conversations_count": 0,
        },
    ),
    "contacts": CollectionSchema(
        table="chat_contacts",
        columns=frozenset({
            "inbox_id", "organization_id", "remote_jid", "name",
            "contact_type", "avatar_url",
        }),
        unique=(("inbox_id", "remote_jid"),),
        cascade=(("conversations", "contact_id"),),
        defaults={"contact_type": "individual"},
    ),
    "conversations": CollectionSchema(
        table="chat_conversations",
        columns=frozenset({
            "inbox_id", "contact_id", "organization_id", "status",
            "last_activity_at", "labels", "is_archived", "is_pinned",
        }),
        unique=(("inbox_id", "contact_id"),),
        cascade=(("messages", "conversation_id"),),
        defaults={"status": "open", "labels": [], "is_archived": False, "is_pinned": False},
    ),
    "messages": CollectionSchema(
        table="chat_messages",
        columns=frozenset({
            "conversation_id", "content", "direction", "message_type",
            "status", "external_id", "participant_jid", "created_at",
        }),
        # NULL external ids never collide
        unique=(("external_id",),),
    ),
}


def schema_for(collection: str, fields: Any = ()) -> CollectionSchema:
    """Return the schema of a collection, validating field names.

    Args:
        collection: Collection name (key of COLLECTIONS).
        fields: Field names about to be read or written.

    Raises:
        ValueError: On unknown collection or field.
    """
    schema = COLLECTIONS.get(collection)
    if schema is None:
        raise ValueError(f"unknown collection: {collection}")
    allowed = schema.columns | {"id", "created_at", "updated_at"}
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"unknown {collection} fields: {sorted(unknown)}")
    return schema


class Store(Protocol):
    """Read/write operations on named collections. Rows are plain dicts."""

    def get(self, collection: str, row_id: str) -> dict[str, Any] | None:
        """Fetch one row by id."""
        ...

    def find_one(self, collection: str, **filters: Any) -> dict[str, Any] | None:
        """Fetch the first row matching all equality filters."""
        ...

    def insert(self, collection: str, values: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return it with id and timestamps.

        Raises:
            DuplicateRecordError: On uniqueness violation.
        """
        ...

    def update(self, collection: str, row_id: str, changes: dict[str, Any]) -> None:
        """Apply changes to one row and bump updated_at.

        Raises:
            DuplicateRecordError: On uniqueness violation.
        """
        ...

    def delete(self, collection: str, row_id: str) -> None:
        """Delete one row (children follow the cascade rules)."""
        ...

    def count(self, collection: str, **filters: Any) -> int:
        """Count rows matching all equality filters."""
        ...
