"""Event processing - route canonical webhook events to the engine.

Every event ends in one EventOutcome:
- processed: state was written
- duplicate: the message was already stored
- ignored: valid event with nothing to do (self-transition, stale QR ...)
- dropped: event lacks what it needs (unknown inbox, no content ...)

Dropped events are logged with their reason and returned to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from chatsync.context import SyncContext
from chatsync.domain.connection import apply_connection_state, store_qr_code
from chatsync.domain.contacts import resolve_contact
from chatsync.domain.conversations import resolve_conversation
from chatsync.domain.errors import ValidationError
from chatsync.domain.messages import apply_status_updates, reconcile
from chatsync.observability.logging import get_logger
from chatsync.observability.redaction import hash_identifier, safe_log_context
from chatsync.whatsapp.content import extract_content
from chatsync.whatsapp.jid import STATUS_BROADCAST, is_group
from chatsync.whatsapp.models import (
    ChatMetadataChanged,
    ConnectionChanged,
    ConnectionStatus,
    Direction,
    InboundEvent,
    MessageReceived,
    MessageStatusChanged,
    QrCodeIssued,
    UnrecognizedEvent,
)

logger = get_logger(__name__)

PROCESSED = "processed"
DUPLICATE = "duplicate"
IGNORED = "ignored"
DROPPED = "dropped"


@dataclass(frozen=True)
class EventOutcome:
    status: str
    reason: str | None = None


def _handle_message(ctx: SyncContext, inbox: dict[str, Any], event: MessageReceived) -> EventOutcome:
    if event.remote_jid == STATUS_BROADCAST or event.remote_jid.endswith("@broadcast"):
        return EventOutcome(IGNORED, "broadcast")

    content = extract_content(event.body)
    if content is None:
        return EventOutcome(DROPPED, "no extractable content")

    group = is_group(event.remote_jid)
    # pushName is the sender's name; for groups and own messages it is not the chat's
    name_hint = event.push_name if not group and not event.from_me else None

    try:
        contact = resolve_contact(ctx, inbox, event.remote_jid, name_hint)
    except ValidationError as e:
        return EventOutcome(DROPPED, str(e))
    conversation = resolve_conversation(ctx, inbox, contact.id)

    result = reconcile(
        ctx,
        conversation.id,
        event.external_id,
        content,
        Direction.OUTGOING if event.from_me else Direction.INCOMING,
        kind=event.message_type,
        participant=event.participant if group else None,
        timestamp=event.timestamp,
    )
    return EventOutcome(PROCESSED if result.inserted or result.claimed else DUPLICATE)


def _handle_metadata(ctx: SyncContext, inbox: dict[str, Any], event: ChatMetadataChanged) -> EventOutcome:
    # Refreshes known contacts only; new identifiers arrive with messages or sync
    updated = 0
    for chat in event.chats:
        contact = ctx.store.find_one("contacts", inbox_id=inbox["id"], remote_jid=chat.remote_jid)
        if contact is None:
            continue
        resolve_contact(ctx, inbox, chat.remote_jid, chat.name, avatar_url=chat.avatar_url)
        updated += 1
    if not updated:
        return EventOutcome(IGNORED, "no known contacts")
    return EventOutcome(PROCESSED)


def _handle_qr(ctx: SyncContext, inbox: dict[str, Any], event: QrCodeIssued) -> EventOutcome:
    if inbox.get("connection_status") == ConnectionStatus.CONNECTED.value:
        return EventOutcome(IGNORED, "inbox already connected")
    store_qr_code(ctx, inbox, event.qr_code)
    return EventOutcome(PROCESSED)


def _dispatch(ctx: SyncContext, inbox: dict[str, Any], event: InboundEvent) -> EventOutcome:
    if isinstance(event, MessageReceived):
        return _handle_message(ctx, inbox, event)
    if isinstance(event, ConnectionChanged):
        changed = apply_connection_state(ctx, inbox, event.state)
        return EventOutcome(PROCESSED) if changed else EventOutcome(IGNORED, "no transition")
    if isinstance(event, QrCodeIssued):
        return _handle_qr(ctx, inbox, event)
    if isinstance(event, MessageStatusChanged):
        report = apply_status_updates(ctx, event.updates)
        return EventOutcome(PROCESSED) if report.applied else EventOutcome(IGNORED, "no matching messages")
    if isinstance(event, ChatMetadataChanged):
        return _handle_metadata(ctx, inbox, event)
    return EventOutcome(DROPPED, "unhandled event")


def process_event(ctx: SyncContext, event: InboundEvent) -> EventOutcome:
    """Apply one normalized event to the store.

    Args:
        ctx: Engine context.
        event: Output of evolution_adapter.normalize().

    Returns:
        EventOutcome with status and, when not processed, a reason.
    """
    event_type = type(event).__name__
    instance = getattr(event, "instance", None)

    if isinstance(event, UnrecognizedEvent):
        outcome = EventOutcome(DROPPED, event.reason)
    else:
        inbox = ctx.store.find_one("inboxes", instance_name=instance)
        if inbox is None:
            outcome = EventOutcome(DROPPED, "unknown instance")
        else:
            outcome = _dispatch(ctx, inbox, event)

    log_ctx = safe_log_context(
        event_type=event_type,
        instance_hash=hash_identifier(instance) if instance else None,
        outcome=outcome.status,
        reason=outcome.reason,
    )
    if outcome.status == DROPPED:
        logger.warning("webhook event dropped", extra={"extra_fields": log_ctx})
    else:
        logger.info("webhook event handled", extra={"extra_fields": log_ctx})
    return outcome
