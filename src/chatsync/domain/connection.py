"""Inbox connection lifecycle.

    pending ──► connected ◄──► disconnected
    pending ──► disconnected

Provider state tokens "open"/"connected" mean a live session; every other
token means disconnected. Entering connected clears the stored QR payload
in the same write as the status, then refreshes the profile from the
provider as a separate, best-effort write.
"""

from __future__ import annotations

from typing import Any

from chatsync.context import SyncContext
from chatsync.observability.logging import get_logger
from chatsync.observability.redaction import safe_log_context
from chatsync.whatsapp.evolution_adapter import as_qr_data_uri
from chatsync.whatsapp.evolution_client import parse_instance_info
from chatsync.whatsapp.jid import format_brazilian_phone
from chatsync.whatsapp.models import ConnectionStatus

logger = get_logger(__name__)

LIVE_TOKENS = frozenset({"open", "connected"})

TRANSITIONS: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    ConnectionStatus.PENDING: frozenset({ConnectionStatus.CONNECTED, ConnectionStatus.DISCONNECTED}),
    ConnectionStatus.CONNECTED: frozenset({ConnectionStatus.DISCONNECTED}),
    ConnectionStatus.DISCONNECTED: frozenset({ConnectionStatus.CONNECTED}),
}


def status_from_token(token: str | None) -> ConnectionStatus:
    """Map a provider state token to a connection status."""
    if token and token.strip().lower() in LIVE_TOKENS:
        return ConnectionStatus.CONNECTED
    return ConnectionStatus.DISCONNECTED


def _current(inbox: dict[str, Any]) -> ConnectionStatus:
    try:
        return ConnectionStatus(inbox.get("connection_status") or ConnectionStatus.PENDING)
    except ValueError:
        return ConnectionStatus.PENDING


def apply_connection_state(ctx: SyncContext, inbox: dict[str, Any], token: str | None) -> bool:
    """Apply a provider state token to an inbox.

    Args:
        ctx: Engine context.
        inbox: Inbox row.
        token: Provider state token (e.g. "open", "close", "connecting").

    Returns:
        True if the status changed. Self-transitions and transitions missing
        from TRANSITIONS are no-ops.
    """
    current = _current(inbox)
    target = status_from_token(token)
    if target is current or target not in TRANSITIONS[current]:
        return False

    changes: dict[str, Any] = {"connection_status": target.value}
    if target is ConnectionStatus.CONNECTED:
        changes["qr_code"] = None
    ctx.store.update("inboxes", inbox["id"], changes)

    logger.info(
        "inbox connection changed",
        extra={
            "extra_fields": safe_log_context(
                inbox_id=inbox["id"], from_status=current.value, to_status=target.value
            )
        },
    )

    if target is ConnectionStatus.CONNECTED:
        on_connected(ctx, inbox)
    return True


def profile_changes(info_data: Any) -> dict[str, Any] | None:
    """Inbox fields derived from a fetchInstances answer."""
    info = parse_instance_info(info_data)
    if info is None:
        return None
    changes: dict[str, Any] = {
        "profile_name": info.profile_name,
        "profile_pic_url": info.profile_pic_url,
        "owner_jid": info.owner_jid,
        "phone_number": format_brazilian_phone(info.owner_jid) or None,
        "contacts_count": info.contacts_count,
        "conversations_count": info.chats_count,
    }
    if info.profile_name and info.owner_jid:
        changes["name"] = f"{info.profile_name} - {format_brazilian_phone(info.owner_jid)}"
    return changes


def on_connected(ctx: SyncContext, inbox: dict[str, Any]) -> None:
    """Refresh profile fields after pairing. Failures are logged, not raised."""
    log_ctx = safe_log_context(inbox_id=inbox["id"])
    try:
        result = ctx.provider.fetch_instance_info(inbox["instance_name"])
        changes = profile_changes(result.data) if result.success else None
        if changes is None:
            logger.warning(
                "profile refresh skipped",
                extra={"extra_fields": safe_log_context(**log_ctx, error=result.error or "no data")},
            )
            return
        ctx.store.update("inboxes", inbox["id"], changes)
    except Exception:
        logger.exception("profile refresh failed", extra={"extra_fields": log_ctx})


def store_qr_code(ctx: SyncContext, inbox: dict[str, Any], qr_code: str | None) -> str | None:
    """Persist the latest pairing QR as a data URI and return it."""
    qr = as_qr_data_uri(qr_code)
    ctx.store.update("inboxes", inbox["id"], {"qr_code": qr})
    return qr


def reset(ctx: SyncContext, inbox: dict[str, Any], **changes: Any) -> None:
    """Force an inbox back to pending (new provider instance, not yet paired)."""
    ctx.store.update(
        "inboxes",
        inbox["id"],
        {"connection_status": ConnectionStatus.PENDING.value, **changes},
    )
