"""Channel lifecycle - provider instances backing inboxes.

Provider calls and store writes cannot share a transaction. Each operation
orders its steps so that a failure after the provider instance exists
deletes that instance again (rollback-equivalent), and re-raises.
"""

from __future__ import annotations

import re
import secrets
import unicodedata
import uuid
from dataclasses import dataclass
from typing import Any

from chatsync.context import SyncContext
from chatsync.domain.connection import (
    LIVE_TOKENS,
    apply_connection_state,
    profile_changes,
    reset,
    status_from_token,
    store_qr_code,
)
from chatsync.domain.errors import NotFoundError, PreconditionError, ProviderError, ValidationError
from chatsync.observability.logging import get_logger
from chatsync.observability.redaction import safe_log_context
from chatsync.whatsapp.evolution_adapter import as_qr_data_uri
from chatsync.whatsapp.evolution_client import parse_connect, parse_instance_info
from chatsync.whatsapp.models import ConnectionStatus

logger = get_logger(__name__)

CREATE_ATTEMPTS = 3
HTTP_CONFLICT = 409
PROFILE_SEPARATOR = " - "

# Provider tokens the info refresh maps onto the state machine
_KNOWN_STATE_TOKENS = LIVE_TOKENS | {"close"}

_NON_SLUG = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class ChannelResult:
    inbox: dict[str, Any]
    qr_code: str | None


def slugify(text: str) -> str:
    """ASCII slug for instance names: ``São Paulo!`` -> ``sao-paulo``."""
    ascii_text = (
        unicodedata.normalize("NFD", str(text)).encode("ascii", "ignore").decode("ascii")
    )
    return _NON_SLUG.sub("-", ascii_text.lower()).strip("-") or "channel"


def instance_name_for(prefix: str, name: str, slug_length: int = 20) -> str:
    return f"{prefix}-{slugify(name)[:slug_length]}-{secrets.token_hex(4)}"


def _get_inbox(ctx: SyncContext, inbox_id: str) -> dict[str, Any]:
    inbox = ctx.store.get("inboxes", inbox_id)
    if inbox is None:
        raise NotFoundError("inbox not found")
    return inbox


def _discard_instance(ctx: SyncContext, instance_name: str) -> None:
    result = ctx.provider.delete_instance(instance_name)
    if not result.success:
        logger.warning(
            "provider instance cleanup failed",
            extra={"extra_fields": safe_log_context(status=result.status, error=result.error)},
        )


def _teardown_instance(ctx: SyncContext, instance_name: str) -> None:
    # Logout fails on never-paired instances; delete is what matters
    ctx.provider.logout_instance(instance_name)
    _discard_instance(ctx, instance_name)


def _connect(ctx: SyncContext, instance_name: str) -> str | None:
    result = ctx.provider.connect_instance(instance_name)
    if not result.success:
        logger.warning(
            "provider connect failed",
            extra={"extra_fields": safe_log_context(status=result.status, error=result.error)},
        )
        return None
    return as_qr_data_uri(parse_connect(result.data).qr_code)


def _register_webhook(ctx: SyncContext, instance_name: str) -> None:
    result = ctx.provider.set_webhook(instance_name, ctx.settings.webhook_url)
    if not result.success:
        _discard_instance(ctx, instance_name)
        raise ProviderError(f"webhook registration failed: {result.error}", result.status)

    applied = ctx.provider.set_instance_settings(instance_name)
    if not applied.success:
        logger.warning(
            "instance settings not applied",
            extra={"extra_fields": safe_log_context(status=applied.status, error=applied.error)},
        )


def provision_channel(ctx: SyncContext, organization_id: str, name: str) -> ChannelResult:
    """Create a provider instance and the inbox backed by it.

    Steps: create instance → register webhook → insert inbox → connect and
    store the pairing QR. A failure after the instance exists deletes it.

    Args:
        ctx: Engine context.
        organization_id: Owning organization UUID.
        name: Display name of the channel.

    Returns:
        ChannelResult with the stored inbox and the QR data URI (if any).

    Raises:
        ValidationError: On missing name or malformed organization id.
        ProviderError: If the instance cannot be created or the webhook
                       cannot be registered.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    try:
        uuid.UUID(str(organization_id))
    except ValueError as e:
        raise ValidationError("organization_id must be a valid UUID") from e

    instance_name = instance_name_for(ctx.settings.instance_prefix, name)
    created = ctx.provider.create_instance(instance_name)
    if not created.success:
        raise ProviderError(f"create instance failed: {created.error}", created.status)

    _register_webhook(ctx, instance_name)

    try:
        inbox = ctx.store.insert(
            "inboxes",
            {
                "organization_id": str(organization_id),
                "name": name.strip(),
                "channel_type": "whatsapp",
                "instance_name": instance_name,
                "provider_base_url": ctx.settings.evolution_base_url,
                "connection_status": ConnectionStatus.PENDING.value,
            },
        )
    except Exception:
        _discard_instance(ctx, instance_name)
        raise

    qr = _connect(ctx, instance_name)
    if qr:
        store_qr_code(ctx, inbox, qr)

    logger.info(
        "channel provisioned",
        extra={"extra_fields": safe_log_context(inbox_id=inbox["id"], has_qr=bool(qr))},
    )
    return ChannelResult(inbox=_get_inbox(ctx, inbox["id"]), qr_code=qr)


def refresh_channel_info(ctx: SyncContext, inbox_id: str) -> dict[str, Any]:
    """Pull profile and connection state from the provider into the inbox.

    A provider failure returns the inbox as stored.

    Raises:
        NotFoundError: If the inbox does not exist.
        PreconditionError: If the inbox has no provider instance.
    """
    inbox = _get_inbox(ctx, inbox_id)
    if not inbox.get("instance_name"):
        raise PreconditionError("inbox has no provider instance")

    result = ctx.provider.fetch_instance_info(inbox["instance_name"])
    info = parse_instance_info(result.data) if result.success else None
    if info is None:
        return inbox

    if info.state and info.state.strip().lower() in _KNOWN_STATE_TOKENS:
        apply_connection_state(ctx, inbox, info.state)

    changes = profile_changes(result.data) or {}
    changes.pop("name", None)
    if not info.contacts_count and not info.chats_count:
        # Keep counters from the last sync when the provider reports none
        changes.pop("contacts_count", None)
        changes.pop("conversations_count", None)
    ctx.store.update("inboxes", inbox_id, changes)
    return _get_inbox(ctx, inbox_id)


def current_qr_code(ctx: SyncContext, inbox_id: str) -> tuple[str | None, str]:
    """Return (QR data URI, connection status) for pairing.

    A connected instance has no QR. Otherwise the instance is (re)connected
    and the fresh QR stored.

    Raises:
        NotFoundError: If the inbox does not exist.
        PreconditionError: If the inbox has no provider instance.
    """
    inbox = _get_inbox(ctx, inbox_id)
    instance = inbox.get("instance_name")
    if not instance:
        raise PreconditionError("inbox has no provider instance")

    state = ctx.provider.connection_state(instance)
    token = parse_connect(state.data).state if state.success else None
    if status_from_token(token) is ConnectionStatus.CONNECTED:
        apply_connection_state(ctx, inbox, token)
        return None, ConnectionStatus.CONNECTED.value

    qr = _connect(ctx, instance)
    if qr:
        store_qr_code(ctx, inbox, qr)
    return qr, inbox.get("connection_status") or ConnectionStatus.PENDING.value


def _create_with_retries(ctx: SyncContext, slug_source: str) -> str:
    for _ in range(CREATE_ATTEMPTS):
        candidate = instance_name_for(ctx.settings.instance_prefix, slug_source, slug_length=16)
        result = ctx.provider.create_instance(candidate)
        if result.success:
            return candidate
        if result.status != HTTP_CONFLICT:
            raise ProviderError(f"create instance failed: {result.error}", result.status)
    raise ProviderError("could not create instance after retries", HTTP_CONFLICT)


def reconnect_channel(ctx: SyncContext, inbox_id: str) -> ChannelResult:
    """Replace the inbox's provider instance with a fresh, unpaired one.

    Steps: logout + delete old instance → create new (retrying name
    conflicts) → connect → register webhook → reset inbox to pending with
    profile fields and counters cleared.

    Raises:
        NotFoundError: If the inbox does not exist.
        ProviderError: If the new instance cannot be created or its webhook
                       cannot be registered.
    """
    inbox = _get_inbox(ctx, inbox_id)
    if inbox.get("instance_name"):
        _teardown_instance(ctx, inbox["instance_name"])

    base_name = (inbox.get("name") or "").split(PROFILE_SEPARATOR)[0] or "channel"
    instance_name = _create_with_retries(ctx, base_name)
    qr = _connect(ctx, instance_name)
    _register_webhook(ctx, instance_name)

    reset(
        ctx,
        inbox,
        name=base_name,
        instance_name=instance_name,
        provider_base_url=ctx.settings.evolution_base_url,
        qr_code=qr,
        profile_name=None,
        profile_pic_url=None,
        phone_number=None,
        owner_jid=None,
        contacts_count=0,
        conversations_count=0,
    )
    logger.info(
        "channel reconnected",
        extra={"extra_fields": safe_log_context(inbox_id=inbox_id, has_qr=bool(qr))},
    )
    return ChannelResult(inbox=_get_inbox(ctx, inbox_id), qr_code=qr)


def delete_channel(ctx: SyncContext, inbox_id: str) -> None:
    """Tear down the provider instance and delete the inbox (cascading).

    Raises:
        NotFoundError: If the inbox does not exist.
    """
    inbox = _get_inbox(ctx, inbox_id)
    if inbox.get("channel_type") == "whatsapp" and inbox.get("instance_name"):
        _teardown_instance(ctx, inbox["instance_name"])
    ctx.store.delete("inboxes", inbox_id)
    logger.info("channel deleted", extra={"extra_fields": safe_log_context(inbox_id=inbox_id)})
