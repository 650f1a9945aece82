"""Evolution API adapter - normalize webhook payloads into canonical events.

Provider versions disagree on field names (``instance`` vs ``instanceName``,
``remoteJid`` vs ``remote_jid`` ...). Each canonical field is read from an
ordered precedence list of dotted paths; the first populated value wins.
normalize() has no side effects and never raises on a dict payload.
"""

from __future__ import annotations

from typing import Any, Iterable

from chatsync.infra.time import from_epoch_seconds

from .models import (
    ChatMetadata,
    ChatMetadataChanged,
    ConnectionChanged,
    InboundEvent,
    MessageReceived,
    MessageStatus,
    MessageStatusChanged,
    QrCodeIssued,
    StatusUpdate,
    UnrecognizedEvent,
)

# Field precedence lists (first populated path wins)
EVENT_FIELDS = ("event", "type")
INSTANCE_FIELDS = ("data.instance", "instance", "instanceName")
STATE_FIELDS = ("data.state", "state", "data.connection", "connectionStatus")
QR_FIELDS = (
    "data.qrcode.base64",
    "data.base64",
    "data.qrcode",
    "qrcode.base64",
    "qrcode",
    "base64",
)
REMOTE_JID_FIELDS = ("data.key.remoteJid", "data.key.remote_jid")
FROM_ME_FIELDS = ("data.key.fromMe", "data.key.from_me")
MESSAGE_ID_FIELDS = ("data.key.id", "data.key.messageId")
MESSAGE_BODY_FIELDS = ("data.message", "data.messageContent")
MESSAGE_TYPE_FIELDS = ("data.messageType", "data.type")
TIMESTAMP_FIELDS = ("data.messageTimestamp", "data.message_timestamp")
PARTICIPANT_FIELDS = ("data.key.participant", "data.participant")
PUSH_NAME_FIELDS = ("data.pushName", "data.push_name")

UPDATE_ID_FIELDS = ("key.id", "keyId", "id")
UPDATE_JID_FIELDS = ("key.remoteJid", "remoteJid")
UPDATE_STATUS_FIELDS = ("status", "update.status")

CHAT_JID_FIELDS = ("remoteJid", "id", "jid", "remote_jid")
CHAT_NAME_FIELDS = ("name", "pushName", "subject", "verifiedName")
CHAT_AVATAR_FIELDS = ("profilePicUrl", "profilePictureUrl", "pictureUrl")

_MISSING = object()

# Provider ack tokens, by name and by numeric code
STATUS_TOKENS: dict[str, MessageStatus] = {
    "ERROR": MessageStatus.FAILED,
    "PENDING": MessageStatus.PENDING,
    "SERVER_ACK": MessageStatus.SENT,
    "DELIVERY_ACK": MessageStatus.DELIVERED,
    "READ": MessageStatus.READ,
    "PLAYED": MessageStatus.READ,
    "0": MessageStatus.FAILED,
    "1": MessageStatus.PENDING,
    "2": MessageStatus.SENT,
    "3": MessageStatus.DELIVERED,
    "4": MessageStatus.READ,
    "5": MessageStatus.READ,
}

_METADATA_EVENTS = {"CHATS_UPSERT", "CHATS_UPDATE", "CONTACTS_UPSERT", "CONTACTS_UPDATE"}


def _lookup(source: Any, path: str) -> Any:
    current = source
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def first_populated(
    source: Any,
    paths: Iterable[str],
    types: type | tuple[type, ...] = str,
) -> Any:
    """Return the first populated value among dotted paths.

    A value is populated when it exists, is not None, is not an empty string
    and is an instance of ``types``.

    Args:
        source: Payload (nested dicts).
        paths: Dotted paths in precedence order.
        types: Accepted value types.

    Returns:
        The value, or None when no path is populated.
    """
    accepted = types if isinstance(types, tuple) else (types,)
    for path in paths:
        value = _lookup(source, path)
        if value is _MISSING or value is None:
            continue
        # bool is an int subclass; only accept it when asked for
        if isinstance(value, bool) and bool not in accepted:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        if isinstance(value, accepted):
            return value
    return None


def normalize_event_name(event: Any) -> str:
    """``messages.upsert`` -> ``MESSAGES_UPSERT``."""
    if not event:
        return ""
    return str(event).strip().upper().replace(".", "_").replace("-", "_")


def as_qr_data_uri(qr: str | None) -> str | None:
    """Prefix raw base64 QR payloads as a PNG data URI."""
    if not qr:
        return None
    return qr if qr.startswith("data:") else f"data:image/png;base64,{qr}"


def map_status_token(token: Any) -> MessageStatus | None:
    """Map a provider ack token (name or numeric code) to MessageStatus."""
    if token is None or isinstance(token, bool):
        return None
    return STATUS_TOKENS.get(str(token).strip().upper())


def _entries(data: Any, *list_keys: str) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return [e for e in data if isinstance(e, dict)]
    if isinstance(data, dict):
        for key in list_keys:
            value = data.get(key)
            if isinstance(value, list):
                return [e for e in value if isinstance(e, dict)]
        return [data]
    return []


def _normalize_message(instance: str, payload: dict[str, Any]) -> InboundEvent:
    remote_jid = first_populated(payload, REMOTE_JID_FIELDS)
    if remote_jid is None:
        return UnrecognizedEvent("MESSAGES_UPSERT", "missing remote identifier", instance)

    body = first_populated(payload, MESSAGE_BODY_FIELDS, (dict, str))
    from_me = first_populated(payload, FROM_ME_FIELDS, bool)
    participant = first_populated(payload, PARTICIPANT_FIELDS)

    return MessageReceived(
        instance=instance,
        remote_jid=remote_jid.strip(),
        from_me=bool(from_me),
        external_id=first_populated(payload, MESSAGE_ID_FIELDS),
        body=body,
        message_type=first_populated(payload, MESSAGE_TYPE_FIELDS) or "text",
        push_name=first_populated(payload, PUSH_NAME_FIELDS),
        participant=participant,
        timestamp=from_epoch_seconds(
            first_populated(payload, TIMESTAMP_FIELDS, (int, float, str, dict))
        ),
    )


def _normalize_status(instance: str, payload: dict[str, Any]) -> InboundEvent:
    updates: list[StatusUpdate] = []
    for entry in _entries(payload.get("data"), "updates"):
        external_id = first_populated(entry, UPDATE_ID_FIELDS)
        status = map_status_token(first_populated(entry, UPDATE_STATUS_FIELDS, (str, int)))
        if external_id is None or status is None:
            continue
        updates.append(
            StatusUpdate(
                external_id=external_id,
                status=status,
                remote_jid=first_populated(entry, UPDATE_JID_FIELDS),
            )
        )
    if not updates:
        return UnrecognizedEvent("MESSAGES_UPDATE", "no usable status updates", instance)
    return MessageStatusChanged(instance=instance, updates=tuple(updates))


def _normalize_metadata(event: str, instance: str, payload: dict[str, Any]) -> InboundEvent:
    chats: list[ChatMetadata] = []
    for entry in _entries(payload.get("data"), "chats", "contacts"):
        remote_jid = first_populated(entry, CHAT_JID_FIELDS)
        if remote_jid is None:
            continue
        chats.append(
            ChatMetadata(
                remote_jid=remote_jid.strip(),
                name=first_populated(entry, CHAT_NAME_FIELDS),
                avatar_url=first_populated(entry, CHAT_AVATAR_FIELDS),
            )
        )
    if not chats:
        return UnrecognizedEvent(event, "no chat identifiers", instance)
    return ChatMetadataChanged(instance=instance, chats=tuple(chats))


def normalize(payload: Any) -> InboundEvent:
    """Normalize a raw Evolution webhook payload.

    Args:
        payload: Decoded JSON body of a webhook delivery.

    Returns:
        One canonical event. Unknown event types and payloads missing their
        identifying fields become UnrecognizedEvent with a reason.
    """
    if not isinstance(payload, dict):
        return UnrecognizedEvent("", "payload is not an object")

    event = normalize_event_name(first_populated(payload, EVENT_FIELDS))
    instance = first_populated(payload, INSTANCE_FIELDS)
    if not event:
        return UnrecognizedEvent("", "missing event type", instance)
    if instance is None:
        return UnrecognizedEvent(event, "missing instance")

    if event == "MESSAGES_UPSERT":
        return _normalize_message(instance, payload)
    if event == "CONNECTION_UPDATE":
        state = first_populated(payload, STATE_FIELDS)
        if state is None:
            return UnrecognizedEvent(event, "missing connection state", instance)
        return ConnectionChanged(instance=instance, state=state)
    if event == "QRCODE_UPDATED":
        return QrCodeIssued(instance=instance, qr_code=as_qr_data_uri(first_populated(payload, QR_FIELDS)))
    if event == "MESSAGES_UPDATE":
        return _normalize_status(instance, payload)
    if event in _METADATA_EVENTS:
        return _normalize_metadata(event, instance, payload)

    return UnrecognizedEvent(event, "unhandled event type", instance)
