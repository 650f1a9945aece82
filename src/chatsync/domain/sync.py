"""Bulk sync - replay provider snapshots through the resolvers.

Three snapshots are pulled independently (contacts, groups, chats). A failed
snapshot degrades to an empty list instead of aborting the sync. Entities are
processed sequentially; inbox counters are recomputed with count queries at
the end rather than incremented along the way.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from chatsync.context import SyncContext
from chatsync.domain.contacts import refresh_avatar, resolve_contact
from chatsync.domain.conversations import resolve_conversation, touch_activity
from chatsync.domain.errors import NotFoundError, PreconditionError, ProviderError, ValidationError
from chatsync.domain.messages import reconcile
from chatsync.infra.time import from_epoch_seconds
from chatsync.observability.logging import get_logger
from chatsync.observability.redaction import hash_identifier, safe_log_context
from chatsync.whatsapp.content import extract_snapshot_content
from chatsync.whatsapp.evolution_adapter import first_populated
from chatsync.whatsapp.evolution_client import unwrap_list
from chatsync.whatsapp.jid import GROUP_SUFFIX, STATUS_BROADCAST, is_group
from chatsync.whatsapp.models import ContactKind, ConnectionStatus, Direction

logger = get_logger(__name__)

CONTACT_JID_FIELDS = ("id.remoteJid", "remoteJid", "remote_jid", "id")
CONTACT_NAME_FIELDS = ("name", "pushName")
CONTACT_AVATAR_FIELDS = ("profilePicUrl", "profile_pic_url")

GROUP_JID_FIELDS = ("id.remoteJid", "id", "remoteJid")
GROUP_NAME_FIELDS = ("subject", "name")
GROUP_AVATAR_FIELDS = ("pictureUrl", "picture_url", "subjectPictureUrl")

CHAT_JID_FIELDS = ("remoteJid", "remote_jid", "id.remoteJid", "id._serialized", "jid", "id")
CHAT_NAME_FIELDS = ("name", "pushName", "contactName", "subject")
CHAT_AVATAR_FIELDS = ("profilePicUrl", "pictureUrl", "avatarUrl")

MESSAGE_ID_FIELDS = ("key.id", "key.messageId", "id", "messageId")
MESSAGE_FROM_ME_FIELDS = ("key.fromMe", "key.from_me", "fromMe")
MESSAGE_TIMESTAMP_FIELDS = (
    "messageTimestamp",
    "message_timestamp",
    "timestamp",
    "conversationTimestamp",
)
MESSAGE_TYPE_FIELDS = ("messageType", "type")

_NUMERIC = (int, float, str, dict)


@dataclass
class SyncReport:
    contacts_processed: int = 0
    contacts_created: int = 0
    conversations_created: int = 0
    chats_processed: int = 0
    messages_inserted: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def _snapshot(result: Any, name: str, *keys: str) -> list[dict[str, Any]]:
    if not result.success:
        logger.warning(
            "snapshot unavailable, continuing without it",
            extra={"extra_fields": safe_log_context(snapshot=name, error=result.error)},
        )
        return []
    return unwrap_list(result.data, *keys)


def _parse_iso(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def chat_activity(chat: dict[str, Any]) -> datetime | None:
    """Best-known activity instant of a chat snapshot entry."""
    last = chat.get("lastMessage") if isinstance(chat.get("lastMessage"), dict) else {}
    return (
        from_epoch_seconds(first_populated(chat, ("conversationTimestamp",), _NUMERIC))
        or from_epoch_seconds(first_populated(last, MESSAGE_TIMESTAMP_FIELDS, _NUMERIC))
        or _parse_iso(chat.get("updatedAt"))
    )


def recent_chats(chats: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
    """Most recent chats first, truncated to ``limit``. Undated chats go last."""
    dated = [(chat_activity(chat), chat) for chat in chats]
    dated.sort(key=lambda pair: (pair[0] is not None, pair[0].timestamp() if pair[0] else 0.0), reverse=True)
    return [chat for _, chat in dated][: max(limit, 0)]


def _address(entry: dict[str, Any], paths: tuple[str, ...]) -> str | None:
    """First value among ``paths`` that looks like a JID.

    Newer provider releases put a database key in ``id`` next to the real
    address, so values without an "@" are passed over.
    """
    for path in paths:
        value = first_populated(entry, (path,))
        if value is not None and "@" in value:
            return value
    return None


def _last_message(chat: dict[str, Any]) -> dict[str, Any] | None:
    last = chat.get("lastMessage")
    if isinstance(last, dict):
        return last
    messages = chat.get("messages")
    if isinstance(messages, list) and messages and isinstance(messages[-1], dict):
        return messages[-1]
    return None


def reconcile_snapshot_message(
    ctx: SyncContext,
    conversation_id: str,
    group: bool,
    message: dict[str, Any],
) -> bool:
    """Reconcile one history entry. Returns True if a row was inserted."""
    content = extract_snapshot_content(message)
    if content is None:
        return False
    from_me = bool(first_populated(message, MESSAGE_FROM_ME_FIELDS, bool))
    participant = first_populated(message, ("key.participant",)) if group else None
    result = reconcile(
        ctx,
        conversation_id,
        first_populated(message, MESSAGE_ID_FIELDS),
        content,
        Direction.OUTGOING if from_me else Direction.INCOMING,
        kind=first_populated(message, MESSAGE_TYPE_FIELDS) or "text",
        participant=participant,
        timestamp=first_populated(message, MESSAGE_TIMESTAMP_FIELDS, _NUMERIC),
    )
    return result.inserted


class _Run:
    """State of one sync pass over an inbox."""

    def __init__(self, ctx: SyncContext, inbox: dict[str, Any]) -> None:
        self.ctx = ctx
        self.inbox = inbox
        self.report = SyncReport()

    def upsert(
        self,
        remote_jid: str,
        name: str | None,
        kind: ContactKind,
        avatar_url: str | None,
    ) -> str | None:
        try:
            contact = resolve_contact(self.ctx, self.inbox, remote_jid, name, kind, avatar_url)
        except ValidationError as exc:
            logger.warning(
                "snapshot entry skipped",
                extra={"extra_fields": safe_log_context(jid_hash=hash_identifier(remote_jid), error=str(exc))},
            )
            return None
        if contact.created:
            self.report.contacts_created += 1
        conversation = resolve_conversation(self.ctx, self.inbox, contact.id)
        if conversation.created:
            self.report.conversations_created += 1
        return conversation.id

    def contacts(self, entries: list[dict[str, Any]]) -> None:
        for entry in entries:
            jid = _address(entry, CONTACT_JID_FIELDS)
            if jid is None or jid.endswith(GROUP_SUFFIX):
                continue
            self.upsert(
                jid,
                first_populated(entry, CONTACT_NAME_FIELDS),
                ContactKind.INDIVIDUAL,
                first_populated(entry, CONTACT_AVATAR_FIELDS),
            )

    def groups(self, entries: list[dict[str, Any]]) -> None:
        for entry in entries:
            jid = _address(entry, GROUP_JID_FIELDS)
            if jid is None or not jid.endswith(GROUP_SUFFIX):
                continue
            self.upsert(
                jid,
                first_populated(entry, GROUP_NAME_FIELDS),
                ContactKind.GROUP,
                first_populated(entry, GROUP_AVATAR_FIELDS),
            )

    def chats(self, entries: list[dict[str, Any]]) -> None:
        for chat in entries:
            jid = _address(chat, CHAT_JID_FIELDS)
            if jid is None or jid == STATUS_BROADCAST:
                continue
            group = is_group(jid)
            conversation_id = self.upsert(
                jid,
                first_populated(chat, CHAT_NAME_FIELDS),
                ContactKind.GROUP if group else ContactKind.INDIVIDUAL,
                first_populated(chat, CHAT_AVATAR_FIELDS),
            )
            if conversation_id is None:
                continue

            message = _last_message(chat)
            if message is not None:
                if reconcile_snapshot_message(self.ctx, conversation_id, group, message):
                    self.report.chats_processed += 1
                    self.report.messages_inserted += 1
                continue

            activity = chat_activity(chat)
            if activity is not None:
                touch_activity(self.ctx, conversation_id, activity)
                self.report.chats_processed += 1


def refresh_counts(ctx: SyncContext, inbox_id: str) -> dict[str, int]:
    """Recompute and persist the inbox's contact/conversation counters."""
    counts = {
        "contacts_count": ctx.store.count("contacts", inbox_id=inbox_id),
        "conversations_count": ctx.store.count("conversations", inbox_id=inbox_id),
    }
    ctx.store.update("inboxes", inbox_id, counts)
    return counts


def sync_inbox(ctx: SyncContext, inbox_id: str) -> SyncReport:
    """Pull contacts, groups and recent chats of a connected inbox.

    Args:
        ctx: Engine context.
        inbox_id: Inbox UUID as string.

    Returns:
        SyncReport with aggregate counters.

    Raises:
        NotFoundError: If the inbox does not exist.
        PreconditionError: If the inbox is not connected or has no instance.
    """
    inbox = ctx.store.get("inboxes", inbox_id)
    if inbox is None:
        raise NotFoundError("inbox not found")
    instance = inbox.get("instance_name")
    if inbox.get("connection_status") != ConnectionStatus.CONNECTED.value or not instance:
        raise PreconditionError("inbox must be connected to sync")

    contacts = _snapshot(ctx.provider.find_contacts(instance), "contacts", "contacts")
    groups = _snapshot(ctx.provider.fetch_all_groups(instance), "groups", "groups")
    chats = _snapshot(ctx.provider.find_chats(instance), "chats", "chats")

    run = _Run(ctx, inbox)
    run.report.contacts_processed = len(contacts) + len(groups)
    run.contacts(contacts)
    run.groups(groups)
    run.chats(recent_chats(chats, ctx.settings.sync_chat_limit))
    refresh_counts(ctx, inbox_id)

    logger.info(
        "inbox sync finished",
        extra={"extra_fields": safe_log_context(inbox_id=inbox_id, **run.report.to_dict())},
    )
    return run.report


def backfill_conversation(ctx: SyncContext, conversation_id: str, limit: int = 50) -> int:
    """Replay the provider's recent history of one chat.

    Returns:
        Number of messages inserted.

    Raises:
        NotFoundError: If the conversation, its inbox or contact is missing.
        PreconditionError: If the inbox has no provider instance.
        ProviderError: If the history cannot be fetched.
    """
    conversation = ctx.store.get("conversations", conversation_id)
    if conversation is None:
        raise NotFoundError("conversation not found")
    inbox = ctx.store.get("inboxes", conversation["inbox_id"])
    contact = ctx.store.get("contacts", conversation["contact_id"])
    if inbox is None or contact is None:
        raise NotFoundError("conversation inbox or contact not found")
    if not inbox.get("instance_name"):
        raise PreconditionError("inbox has no provider instance")

    result = ctx.provider.find_messages(inbox["instance_name"], contact["remote_jid"], limit)
    if not result.success:
        raise ProviderError(result.error or "history unavailable", result.status)

    if not contact.get("avatar_url"):
        refresh_avatar(ctx, inbox, contact)

    group = is_group(contact["remote_jid"])
    inserted = 0
    for message in unwrap_list(result.data, "messages", "records"):
        if reconcile_snapshot_message(ctx, conversation_id, group, message):
            inserted += 1
    return inserted
