"""Evolution API HTTP client.

Every call returns a ProviderResult; network errors and non-2xx answers are
reported as ``success=False`` and never raised. Callers decide whether a
failure aborts (channel lifecycle) or degrades (bulk sync).

Security: NEVER log numbers or message text. Only log hashes and lengths.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import requests

from chatsync.observability.logging import get_logger
from chatsync.observability.redaction import hash_identifier, safe_log_context
from chatsync.settings import Settings

logger = get_logger(__name__)

INTEGRATION = "WHATSAPP-BAILEYS"

WEBHOOK_EVENTS = (
    "QRCODE_UPDATED",
    "CONNECTION_UPDATE",
    "MESSAGES_UPSERT",
    "MESSAGES_UPDATE",
    "CHATS_UPSERT",
    "CHATS_UPDATE",
    "CONTACTS_UPSERT",
    "CONTACTS_UPDATE",
)

# Instance behaviour applied right after creation
DEFAULT_INSTANCE_SETTINGS = {
    "rejectCalls": False,
    "ignoreGroups": False,
    "alwaysOnline": False,
    "readMessages": False,
    "syncFullHistory": False,
    "readStatus": False,
}

FIND_MESSAGES_MAX = 100


@dataclass(frozen=True)
class ProviderResult:
    """Outcome of one provider call.

    Attributes:
        success: True for 2xx answers.
        data: Decoded JSON body (None when empty or not JSON).
        error: Human-readable failure reason.
        status: HTTP status, or None on network failure.
    """

    success: bool
    data: Any = None
    error: str | None = None
    status: int | None = None


@dataclass(frozen=True)
class ConnectResult:
    qr_code: str | None
    pairing_code: str | None
    state: str | None


@dataclass(frozen=True)
class InstanceInfo:
    """Profile snapshot of a paired instance."""

    profile_name: str | None
    profile_pic_url: str | None
    owner_jid: str | None
    state: str | None
    contacts_count: int
    chats_count: int


class ProviderClient(Protocol):
    """Provider operations the engine depends on."""

    def create_instance(self, instance_name: str) -> ProviderResult: ...

    def connect_instance(self, instance_name: str) -> ProviderResult: ...

    def connection_state(self, instance_name: str) -> ProviderResult: ...

    def delete_instance(self, instance_name: str) -> ProviderResult: ...

    def logout_instance(self, instance_name: str) -> ProviderResult: ...

    def fetch_instance_info(self, instance_name: str) -> ProviderResult: ...

    def set_webhook(self, instance_name: str, url: str) -> ProviderResult: ...

    def set_instance_settings(self, instance_name: str) -> ProviderResult: ...

    def send_text(self, instance_name: str, number: str, text: str) -> ProviderResult: ...

    def find_chats(self, instance_name: str) -> ProviderResult: ...

    def find_contacts(self, instance_name: str) -> ProviderResult: ...

    def fetch_all_groups(self, instance_name: str) -> ProviderResult: ...

    def find_messages(self, instance_name: str, remote_jid: str, limit: int = 50) -> ProviderResult: ...

    def fetch_profile_picture(self, instance_name: str, number: str) -> ProviderResult: ...


def _error_message(data: Any, status: int) -> str:
    if isinstance(data, dict):
        for key in ("message", "error"):
            value = data.get(key)
            if isinstance(value, list) and value:
                return str(value[0])
            if value:
                return str(value)
    return f"HTTP {status}"


def unwrap_list(data: Any, *keys: str) -> list[dict[str, Any]]:
    """Extract the entry list from a snapshot answer.

    Answers come as a bare array, or wrapped under ``data.<key>`` or
    ``data.data`` depending on the provider version.
    """
    if isinstance(data, list):
        return [e for e in data if isinstance(e, dict)]
    if isinstance(data, dict):
        for key in (*keys, "data"):
            value = data.get(key)
            if isinstance(value, list):
                return [e for e in value if isinstance(e, dict)]
            if isinstance(value, dict):
                nested = unwrap_list(value, *keys)
                if nested:
                    return nested
    return []


def parse_connect(data: Any) -> ConnectResult:
    """Pull QR payload, pairing code and state out of a connect answer."""
    if not isinstance(data, dict):
        return ConnectResult(None, None, None)
    qr = data.get("base64") or data.get("qrCode") or data.get("qrcode")
    if isinstance(qr, dict):
        qr = qr.get("base64")
    instance = data.get("instance") if isinstance(data.get("instance"), dict) else {}
    state = data.get("state") or instance.get("state")
    return ConnectResult(
        qr_code=qr if isinstance(qr, str) and qr else None,
        pairing_code=data.get("pairingCode") or data.get("code"),
        state=state if isinstance(state, str) else None,
    )


def parse_instance_info(data: Any) -> InstanceInfo | None:
    """Map a fetchInstances answer (first entry) to InstanceInfo."""
    entry = data[0] if isinstance(data, list) and data else data
    if not isinstance(entry, dict):
        return None
    nested = entry.get("instance") if isinstance(entry.get("instance"), dict) else {}
    counts = entry.get("_count") if isinstance(entry.get("_count"), dict) else {}
    return InstanceInfo(
        profile_name=entry.get("profileName") or nested.get("profileName"),
        profile_pic_url=entry.get("profilePicUrl") or nested.get("profilePictureUrl"),
        owner_jid=entry.get("ownerJid") or nested.get("owner"),
        state=entry.get("connectionStatus") or nested.get("state"),
        contacts_count=int(counts.get("Contact") or 0),
        chats_count=int(counts.get("Chat") or 0),
    )


def parse_sent_message_id(data: Any) -> str | None:
    """External id of a sent message (``key.id``, sometimes under ``data``)."""
    if not isinstance(data, dict):
        return None
    for source in (data, data.get("data")):
        if isinstance(source, dict) and isinstance(source.get("key"), dict):
            message_id = source["key"].get("id")
            if message_id:
                return str(message_id)
    return None


class EvolutionClient:
    """ProviderClient over requests.Session."""

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self._base_url = settings.evolution_base_url.rstrip("/")
        self._timeout = settings.http_timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {"Content-Type": "application/json", "apikey": settings.evolution_api_key}
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> ProviderResult:
        url = f"{self._base_url}{path}"
        log_ctx = safe_log_context(method=method, path=path)
        try:
            response = self._session.request(
                method, url, json=json, params=params, timeout=self._timeout
            )
        except requests.RequestException as e:
            logger.warning(
                "provider request failed",
                extra={"extra_fields": safe_log_context(**log_ctx, error_type=type(e).__name__)},
            )
            return ProviderResult(success=False, error=str(e) or type(e).__name__)

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = None

        if not response.ok:
            logger.warning(
                "provider request rejected",
                extra={"extra_fields": safe_log_context(**log_ctx, status=response.status_code)},
            )
            return ProviderResult(
                success=False,
                data=data,
                error=_error_message(data, response.status_code),
                status=response.status_code,
            )
        return ProviderResult(success=True, data=data, status=response.status_code)

    # Instances

    def create_instance(self, instance_name: str) -> ProviderResult:
        return self._request(
            "POST",
            "/instance/create",
            json={"instanceName": instance_name, "integration": INTEGRATION, "qrcode": True},
        )

    def connect_instance(self, instance_name: str) -> ProviderResult:
        return self._request("GET", f"/instance/connect/{instance_name}")

    def connection_state(self, instance_name: str) -> ProviderResult:
        return self._request("GET", f"/instance/connectionState/{instance_name}")

    def delete_instance(self, instance_name: str) -> ProviderResult:
        return self._request("DELETE", f"/instance/delete/{instance_name}")

    def logout_instance(self, instance_name: str) -> ProviderResult:
        return self._request("DELETE", f"/instance/logout/{instance_name}")

    def fetch_instance_info(self, instance_name: str) -> ProviderResult:
        return self._request(
            "GET", "/instance/fetchInstances", params={"instanceName": instance_name}
        )

    def set_webhook(self, instance_name: str, url: str) -> ProviderResult:
        return self._request(
            "POST",
            f"/webhook/set/{instance_name}",
            json={
                "webhook": {
                    "enabled": True,
                    "url": url,
                    "byEvents": False,
                    "base64": True,
                    "events": list(WEBHOOK_EVENTS),
                }
            },
        )

    def set_instance_settings(self, instance_name: str) -> ProviderResult:
        return self._request(
            "POST", f"/settings/set/{instance_name}", json=dict(DEFAULT_INSTANCE_SETTINGS)
        )

    # Messaging

    def send_text(self, instance_name: str, number: str, text: str) -> ProviderResult:
        logger.info(
            "sending outbound message",
            extra={
                "extra_fields": safe_log_context(
                    to_hash=hash_identifier(number), text_len=len(text)
                )
            },
        )
        return self._request(
            "POST", f"/message/sendText/{instance_name}", json={"number": number, "text": text}
        )

    # Snapshots

    def find_chats(self, instance_name: str) -> ProviderResult:
        return self._request("POST", f"/chat/findChats/{instance_name}", json={})

    def find_contacts(self, instance_name: str) -> ProviderResult:
        return self._request("POST", f"/chat/findContacts/{instance_name}", json={})

    def fetch_all_groups(self, instance_name: str) -> ProviderResult:
        return self._request(
            "GET",
            f"/group/fetchAllGroups/{instance_name}",
            params={"getParticipants": "false"},
        )

    def find_messages(self, instance_name: str, remote_jid: str, limit: int = 50) -> ProviderResult:
        limit = max(1, min(int(limit), FIND_MESSAGES_MAX))
        return self._request(
            "POST",
            f"/chat/findMessages/{instance_name}",
            json={"where": {"key": {"remoteJid": remote_jid}}, "limit": limit},
        )

    def fetch_profile_picture(self, instance_name: str, number: str) -> ProviderResult:
        return self._request(
            "POST", f"/chat/fetchProfilePictureUrl/{instance_name}", json={"number": number}
        )


def parse_profile_picture(data: Any) -> str | None:
    """Avatar URL from a fetchProfilePictureUrl answer."""
    if not isinstance(data, dict):
        return None
    url = data.get("profilePictureUrl") or data.get("profilePicture")
    return url if isinstance(url, str) and url else None
