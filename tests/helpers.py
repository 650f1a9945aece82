"""Shared test helpers (not fixtures): fake provider and seed functions."""

from __future__ import annotations

from typing import Any

from chatsync.context import SyncContext
from chatsync.infra.memory_store import MemoryStore
from chatsync.settings import Settings
from chatsync.whatsapp.evolution_client import ProviderResult

ORG_ID = "7d0f7b4e-2a57-4a35-9a43-3c1f4f3f0e11"


def ok(data: Any = None) -> ProviderResult:
    return ProviderResult(success=True, data=data, status=200)


def fail(error: str = "boom", status: int | None = 500) -> ProviderResult:
    return ProviderResult(success=False, error=error, status=status)


class FakeProvider:
    """ProviderClient double.

    Every call is recorded in ``calls`` as (method, args). Answers come from
    ``results[method]``: a ProviderResult, a list consumed one per call, an
    exception to raise, a callable given the call's args, or nothing
    (default success).
    """

    DEFAULTS: dict[str, Any] = {
        "connect_instance": {"base64": "QRDATA", "code": "2@abc"},
        "connection_state": {"instance": {"state": "connecting"}},
        "fetch_instance_info": [],
        "send_text": {"key": {"id": "EXT-1", "fromMe": True}},
    }

    def __init__(self, **results: Any) -> None:
        self.results: dict[str, Any] = dict(results)
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def _answer(self, method: str, *args: Any) -> ProviderResult:
        self.calls.append((method, args))
        configured = self.results.get(method)
        if isinstance(configured, list):
            return configured.pop(0)
        if isinstance(configured, ProviderResult):
            return configured
        if isinstance(configured, Exception):
            raise configured
        if callable(configured):
            return configured(*args)
        return ok(self.DEFAULTS.get(method))

    def called(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]

    def create_instance(self, instance_name):
        return self._answer("create_instance", instance_name)

    def connect_instance(self, instance_name):
        return self._answer("connect_instance", instance_name)

    def connection_state(self, instance_name):
        return self._answer("connection_state", instance_name)

    def delete_instance(self, instance_name):
        return self._answer("delete_instance", instance_name)

    def logout_instance(self, instance_name):
        return self._answer("logout_instance", instance_name)

    def fetch_instance_info(self, instance_name):
        return self._answer("fetch_instance_info", instance_name)

    def set_webhook(self, instance_name, url):
        return self._answer("set_webhook", instance_name, url)

    def set_instance_settings(self, instance_name):
        return self._answer("set_instance_settings", instance_name)

    def send_text(self, instance_name, number, text):
        return self._answer("send_text", instance_name, number, text)

    def find_chats(self, instance_name):
        return self._answer("find_chats", instance_name)

    def find_contacts(self, instance_name):
        return self._answer("find_contacts", instance_name)

    def fetch_all_groups(self, instance_name):
        return self._answer("fetch_all_groups", instance_name)

    def find_messages(self, instance_name, remote_jid, limit=50):
        return self._answer("find_messages", instance_name, remote_jid, limit)

    def fetch_profile_picture(self, instance_name, number):
        return self._answer("fetch_profile_picture", instance_name, number)


def make_context(provider: FakeProvider | None = None, **settings: Any) -> SyncContext:
    return SyncContext(
        store=MemoryStore(),
        provider=provider or FakeProvider(),
        settings=Settings(**settings),
    )


def seed_inbox(ctx: SyncContext, **overrides: Any) -> dict[str, Any]:
    values = {
        "organization_id": ORG_ID,
        "name": "Support",
        "instance_name": "abc",
        "connection_status": "pending",
    }
    values.update(overrides)
    return ctx.store.insert("inboxes", values)


def seed_conversation(
    ctx: SyncContext,
    inbox: dict[str, Any],
    remote_jid: str = "5511999999999@s.whatsapp.net",
) -> tuple[dict[str, Any], dict[str, Any]]:
    contact = ctx.store.insert(
        "contacts",
        {
            "inbox_id": inbox["id"],
            "organization_id": inbox["organization_id"],
            "remote_jid": remote_jid,
            "name": "Ana",
            "contact_type": "group" if remote_jid.endswith("@g.us") else "individual",
        },
    )
    conversation = ctx.store.insert(
        "conversations",
        {
            "inbox_id": inbox["id"],
            "contact_id": contact["id"],
            "organization_id": inbox["organization_id"],
        },
    )
    return contact, conversation


def message_payload(
    remote_jid: str = "551199999999@x",
    message_id: str | None = "M1",
    message: Any = None,
    from_me: bool = False,
    instance: str = "abc",
    **data: Any,
) -> dict[str, Any]:
    key: dict[str, Any] = {"remoteJid": remote_jid, "fromMe": from_me}
    if message_id is not None:
        key["id"] = message_id
    return {
        "event": "messages.upsert",
        "instance": instance,
        "data": {
            "key": key,
            "message": {"conversation": "hi"} if message is None else message,
            **data,
        },
    }
