"""Message reconciliation and delivery-status tracking.

reconcile() persists a message at most once per external id. The existence
check is only a fast path: the messages(external_id) unique constraint is
what makes concurrent deliveries safe, and a DuplicateRecordError on insert
is the idempotent-skip outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from chatsync.context import SyncContext
from chatsync.domain.conversations import touch_activity
from chatsync.infra.store import DuplicateRecordError
from chatsync.infra.time import from_epoch_seconds, utc_now
from chatsync.observability.logging import get_logger
from chatsync.observability.redaction import safe_log_context
from chatsync.whatsapp.models import Direction, MessageStatus, StatusUpdate

logger = get_logger(__name__)

# Forward-only ordering for outgoing deliveries. FAILED is handled apart.
STATUS_RANK: dict[MessageStatus, int] = {
    MessageStatus.PENDING: 0,
    MessageStatus.SENDING: 0,
    MessageStatus.SENT: 1,
    MessageStatus.DELIVERED: 2,
    MessageStatus.READ: 3,
}


@dataclass(frozen=True)
class ReconcileResult:
    inserted: bool
    message_id: str | None = None
    claimed: bool = False


@dataclass(frozen=True)
class StatusReport:
    applied: int = 0
    skipped: int = 0


def message_timestamp(value: Any) -> datetime:
    """Provider epoch seconds (or a datetime) as aware UTC; now when absent."""
    if isinstance(value, datetime):
        return value
    return from_epoch_seconds(value) or utc_now()


def _claim_in_flight(
    ctx: SyncContext,
    conversation_id: str,
    external_id: str,
    content: str,
    status: MessageStatus | str | None,
) -> str | None:
    """Attach an echoed own message to the outbound row still waiting on send.

    The provider can deliver the fromMe echo before send_text returns. The
    row send_message inserted is then still ``sending`` without an id.
    """
    pending = ctx.store.find_one(
        "messages",
        conversation_id=conversation_id,
        direction=Direction.OUTGOING.value,
        status=MessageStatus.SENDING.value,
        external_id=None,
        content=content,
    )
    if pending is None:
        return None
    try:
        ctx.store.update(
            "messages",
            pending["id"],
            {"external_id": external_id, "status": MessageStatus(status or MessageStatus.SENT).value},
        )
    except DuplicateRecordError:
        existing = ctx.store.find_one("messages", external_id=external_id)
        return existing["id"] if existing else None
    logger.info(
        "outbound echo matched in-flight message",
        extra={"extra_fields": safe_log_context(conversation_id=conversation_id, message_id=pending["id"])},
    )
    return pending["id"]


def reconcile(
    ctx: SyncContext,
    conversation_id: str,
    external_id: str | None,
    content: str,
    direction: Direction | str,
    kind: str = "text",
    participant: str | None = None,
    timestamp: Any = None,
    status: MessageStatus | str | None = None,
) -> ReconcileResult:
    """Persist a message once and bump the conversation's activity.

    Args:
        ctx: Engine context.
        conversation_id: Owning conversation.
        external_id: Provider message id. None disables deduplication.
        content: Display text or placeholder.
        direction: incoming or outgoing.
        kind: Provider message type (e.g. "conversation", "imageMessage").
        participant: Group sub-sender JID. Only set for group messages.
        timestamp: Epoch seconds, datetime, or None for processing time.
        status: Explicit status. Defaults to received/sent by direction.

    Returns:
        ReconcileResult(inserted, message_id, claimed). inserted=False means
        the external id was already stored and nothing was written, unless
        claimed is set: an own message echoed while its send was in flight
        takes over the pending outbound row instead of adding a second one.
    """
    direction = Direction(direction)
    if external_id:
        existing = ctx.store.find_one("messages", external_id=external_id)
        if existing is not None:
            return ReconcileResult(inserted=False, message_id=existing["id"])
        if direction is Direction.OUTGOING:
            claimed = _claim_in_flight(ctx, conversation_id, external_id, content, status)
            if claimed is not None:
                return ReconcileResult(inserted=False, message_id=claimed, claimed=True)

    if status is None:
        status = MessageStatus.RECEIVED if direction is Direction.INCOMING else MessageStatus.SENT
    created_at = message_timestamp(timestamp)

    try:
        row = ctx.store.insert(
            "messages",
            {
                "conversation_id": conversation_id,
                "content": content,
                "direction": direction.value,
                "message_type": kind or "text",
                "status": MessageStatus(status).value,
                "external_id": external_id or None,
                "participant_jid": participant,
                "created_at": created_at,
            },
        )
    except DuplicateRecordError:
        existing = ctx.store.find_one("messages", external_id=external_id)
        logger.info(
            "duplicate message delivery skipped",
            extra={"extra_fields": safe_log_context(conversation_id=conversation_id)},
        )
        return ReconcileResult(inserted=False, message_id=existing["id"] if existing else None)

    touch_activity(ctx, conversation_id, created_at)
    return ReconcileResult(inserted=True, message_id=row["id"])


def can_advance(current: str | None, new: MessageStatus) -> bool:
    """Whether an outgoing message may move from ``current`` to ``new``."""
    try:
        current_status = MessageStatus(current) if current else None
    except ValueError:
        current_status = None
    if current_status is None:
        return True
    if current_status in (MessageStatus.READ, MessageStatus.FAILED):
        return False
    if new is MessageStatus.FAILED:
        return True
    return STATUS_RANK.get(new, -1) > STATUS_RANK.get(current_status, -1)


def apply_status_updates(ctx: SyncContext, updates: Iterable[StatusUpdate]) -> StatusReport:
    """Apply provider delivery acks to stored outgoing messages.

    Unknown external ids, incoming messages and regressions are skipped.
    """
    applied = skipped = 0
    for update in updates:
        message = ctx.store.find_one("messages", external_id=update.external_id)
        if (
            message is None
            or message.get("direction") != Direction.OUTGOING.value
            or not can_advance(message.get("status"), update.status)
        ):
            skipped += 1
            continue
        ctx.store.update("messages", message["id"], {"status": update.status.value})
        applied += 1
    if applied or skipped:
        logger.info(
            "status updates applied",
            extra={"extra_fields": safe_log_context(applied=applied, skipped=skipped)},
        )
    return StatusReport(applied=applied, skipped=skipped)
