"""Canonical event variants and enumerations for provider data.

Every webhook payload normalizes to exactly one of the event dataclasses
below; anything the engine does not handle becomes UnrecognizedEvent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union


class ConnectionStatus(str, Enum):
    """Inbox connection lifecycle."""

    PENDING = "pending"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class ContactKind(str, Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"


class Direction(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class MessageStatus(str, Enum):
    """Delivery status of a stored message."""

    RECEIVED = "received"
    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


@dataclass(frozen=True)
class ConnectionChanged:
    instance: str
    state: str


@dataclass(frozen=True)
class QrCodeIssued:
    instance: str
    qr_code: str | None


@dataclass(frozen=True)
class MessageReceived:
    """A message notification (incoming, or sent from the paired phone)."""

    instance: str
    remote_jid: str
    from_me: bool
    external_id: str | None
    body: Any
    message_type: str
    push_name: str | None = None
    participant: str | None = None
    timestamp: datetime | None = None


@dataclass(frozen=True)
class StatusUpdate:
    external_id: str
    status: MessageStatus
    remote_jid: str | None = None


@dataclass(frozen=True)
class MessageStatusChanged:
    instance: str
    updates: tuple[StatusUpdate, ...]


@dataclass(frozen=True)
class ChatMetadata:
    remote_jid: str
    name: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True)
class ChatMetadataChanged:
    instance: str
    chats: tuple[ChatMetadata, ...]


@dataclass(frozen=True)
class UnrecognizedEvent:
    """Payload the engine does not act on. Logged and dropped."""

    event: str
    reason: str
    instance: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


InboundEvent = Union[
    ConnectionChanged,
    QrCodeIssued,
    MessageReceived,
    MessageStatusChanged,
    ChatMetadataChanged,
    UnrecognizedEvent,
]
