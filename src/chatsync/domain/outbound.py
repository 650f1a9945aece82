"""Outbound dispatch - durable send state machine.

    sending ──► sent    (provider accepted and returned key.id)
       └──────► failed  (provider error or no id in the answer)

The row is inserted before the provider call and never rolled back, so a
failed send stays visible as a failed message.

Security: NEVER log the recipient or the text. Only log hashes and lengths.
"""

from __future__ import annotations

from typing import Any

from chatsync.context import SyncContext
from chatsync.domain.conversations import touch_activity
from chatsync.domain.errors import NotFoundError, PreconditionError, ValidationError
from chatsync.infra.store import DuplicateRecordError
from chatsync.infra.time import utc_now
from chatsync.observability.logging import get_logger
from chatsync.observability.redaction import hash_identifier, safe_log_context
from chatsync.whatsapp.evolution_client import parse_sent_message_id
from chatsync.whatsapp.jid import to_send_number
from chatsync.whatsapp.models import Direction, MessageStatus

logger = get_logger(__name__)


def send_message(ctx: SyncContext, conversation_id: str, text: Any) -> dict[str, Any]:
    """Send a text message on a conversation.

    Args:
        ctx: Engine context.
        conversation_id: Conversation UUID as string.
        text: Message text. Surrounding whitespace is stripped.

    Returns:
        The stored message row with its final status (sent or failed).

    Raises:
        ValidationError: If text is empty.
        NotFoundError: If the conversation does not exist.
        PreconditionError: If the inbox has no provider instance or the
                           contact has no remote identifier.
    """
    body = text.strip() if isinstance(text, str) else ""
    if not body:
        raise ValidationError("message content is required")

    conversation = ctx.store.get("conversations", conversation_id)
    if conversation is None:
        raise NotFoundError("conversation not found")
    inbox = ctx.store.get("inboxes", conversation["inbox_id"])
    contact = ctx.store.get("contacts", conversation["contact_id"])
    instance = inbox.get("instance_name") if inbox else None
    remote_jid = contact.get("remote_jid") if contact else None
    if not instance or not remote_jid:
        raise PreconditionError("conversation or inbox not ready for sending")

    message = ctx.store.insert(
        "messages",
        {
            "conversation_id": conversation_id,
            "content": body,
            "direction": Direction.OUTGOING.value,
            "message_type": "text",
            "status": MessageStatus.SENDING.value,
        },
    )
    touch_activity(ctx, conversation_id, utc_now())

    log_ctx = safe_log_context(
        message_id=message["id"],
        to_hash=hash_identifier(remote_jid),
        text_len=len(body),
    )

    result = ctx.provider.send_text(instance, to_send_number(remote_jid), body)
    external_id = parse_sent_message_id(result.data) if result.success else None

    if external_id is None:
        changes: dict[str, Any] = {"status": MessageStatus.FAILED.value}
        logger.error(
            "outbound send failed",
            extra={
                "extra_fields": safe_log_context(
                    **log_ctx, provider_status=result.status, error=result.error or "missing message id"
                )
            },
        )
    else:
        changes = {"status": MessageStatus.SENT.value, "external_id": external_id}
        logger.info("outbound message sent", extra={"extra_fields": log_ctx})

    current = ctx.store.get("messages", message["id"]) or message
    if external_id is not None and current.get("external_id") == external_id:
        # The echo already claimed this row; its status may be ahead of sent
        return current

    try:
        ctx.store.update("messages", message["id"], changes)
    except DuplicateRecordError:
        # Another row holds the id (echo content differed from the sent body)
        changes = {"status": MessageStatus.SENT.value}
        ctx.store.update("messages", message["id"], changes)

    return ctx.store.get("messages", message["id"]) or {**message, **changes}
