"""Conversation resolution and thread-level updates.

Exactly one conversation exists per (inbox, contact). The resolver never
mutates an existing conversation; last_activity_at is owned by the message
reconciler through touch_activity().
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from chatsync.context import SyncContext
from chatsync.domain.errors import NotFoundError, ValidationError
from chatsync.infra.store import DuplicateRecordError

OPEN = "open"


@dataclass(frozen=True)
class ResolvedConversation:
    id: str
    created: bool


def resolve_conversation(
    ctx: SyncContext,
    inbox: dict[str, Any],
    contact_id: str,
) -> ResolvedConversation:
    """Find or create the conversation for (inbox, contact).

    Args:
        ctx: Engine context.
        inbox: Inbox row (needs id and organization_id).
        contact_id: Contact UUID as string.

    Returns:
        ResolvedConversation(id, created).
    """
    existing = ctx.store.find_one("conversations", inbox_id=inbox["id"], contact_id=contact_id)
    if existing is not None:
        return ResolvedConversation(id=existing["id"], created=False)

    try:
        row = ctx.store.insert(
            "conversations",
            {
                "inbox_id": inbox["id"],
                "contact_id": contact_id,
                "organization_id": inbox.get("organization_id"),
                "status": OPEN,
                "labels": [],
                "is_archived": False,
                "is_pinned": False,
            },
        )
    except DuplicateRecordError:
        winner = ctx.store.find_one("conversations", inbox_id=inbox["id"], contact_id=contact_id)
        if winner is None:
            raise
        return ResolvedConversation(id=winner["id"], created=False)
    return ResolvedConversation(id=row["id"], created=True)


def touch_activity(ctx: SyncContext, conversation_id: str, at: datetime) -> bool:
    """Advance last_activity_at to ``at``. Never moves it backwards.

    Returns:
        True if the timestamp was written.
    """
    conversation = ctx.store.get("conversations", conversation_id)
    if conversation is None:
        return False
    current = conversation.get("last_activity_at")
    if current is not None and current >= at:
        return False
    ctx.store.update("conversations", conversation_id, {"last_activity_at": at})
    return True


def update_flags(
    ctx: SyncContext,
    conversation_id: str,
    labels: list[str] | None = None,
    is_archived: bool | None = None,
    is_pinned: bool | None = None,
) -> dict[str, Any]:
    """Set labels and the archive/pin flags. None leaves a field unchanged.

    Returns:
        The updated conversation row.

    Raises:
        ValidationError: If no field is given or a label is blank.
        NotFoundError: If the conversation does not exist.
    """
    changes: dict[str, Any] = {}
    if labels is not None:
        cleaned = [label.strip() for label in labels]
        if any(not label for label in cleaned):
            raise ValidationError("labels must be non-empty strings")
        # Keep first occurrence order, drop repeats
        changes["labels"] = list(dict.fromkeys(cleaned))
    if is_archived is not None:
        changes["is_archived"] = bool(is_archived)
    if is_pinned is not None:
        changes["is_pinned"] = bool(is_pinned)
    if not changes:
        raise ValidationError("nothing to update")

    if ctx.store.get("conversations", conversation_id) is None:
        raise NotFoundError("conversation not found")
    ctx.store.update("conversations", conversation_id, changes)
    return ctx.store.get("conversations", conversation_id)  # type: ignore[return-value]
