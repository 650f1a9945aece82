"""Tests for normalize() - Evolution payload to canonical events."""

from datetime import datetime, timezone

from chatsync.whatsapp.evolution_adapter import (
    INSTANCE_FIELDS,
    first_populated,
    map_status_token,
    normalize,
    normalize_event_name,
)
from chatsync.whatsapp.models import (
    ChatMetadataChanged,
    ConnectionChanged,
    MessageReceived,
    MessageStatus,
    MessageStatusChanged,
    QrCodeIssued,
    UnrecognizedEvent,
)


class TestFirstPopulated:
    def test_first_path_wins(self):
        payload = {"data": {"instance": "a"}, "instance": "b", "instanceName": "c"}
        assert first_populated(payload, INSTANCE_FIELDS) == "a"

    def test_skips_missing_and_empty_values(self):
        payload = {"data": {"instance": ""}, "instance": None, "instanceName": "c"}
        assert first_populated(payload, INSTANCE_FIELDS) == "c"

    def test_type_filter(self):
        payload = {"a": 5, "b": "x"}
        assert first_populated(payload, ("a", "b")) == "x"
        assert first_populated(payload, ("a", "b"), int) == 5

    def test_bool_only_when_requested(self):
        payload = {"flag": False, "n": 0}
        assert first_populated(payload, ("flag",), int) is None
        assert first_populated(payload, ("flag",), bool) is False

    def test_none_when_nothing_populated(self):
        assert first_populated({"data": "not-a-dict"}, ("data.instance",)) is None


class TestEventName:
    def test_dotted_lowercase(self):
        assert normalize_event_name("messages.upsert") == "MESSAGES_UPSERT"

    def test_already_canonical(self):
        assert normalize_event_name("CONNECTION_UPDATE") == "CONNECTION_UPDATE"

    def test_empty(self):
        assert normalize_event_name(None) == ""


class TestMessageEvents:
    def test_message_upsert(self):
        payload = {
            "event": "messages.upsert",
            "instance": "abc",
            "data": {
                "key": {"remoteJid": "551199999999@x", "fromMe": False, "id": "M1"},
                "pushName": "Ana",
                "messageType": "conversation",
                "messageTimestamp": 1700000000,
                "message": {"conversation": "hi"},
            },
        }

        event = normalize(payload)

        assert isinstance(event, MessageReceived)
        assert event.instance == "abc"
        assert event.remote_jid == "551199999999@x"
        assert event.from_me is False
        assert event.external_id == "M1"
        assert event.body == {"conversation": "hi"}
        assert event.message_type == "conversation"
        assert event.push_name == "Ana"
        assert event.timestamp == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_alternate_field_names(self):
        payload = {
            "type": "MESSAGES_UPSERT",
            "instanceName": "abc",
            "data": {
                "key": {"remote_jid": "5511@s.whatsapp.net", "from_me": True, "messageId": "M2"},
                "messageContent": {"conversation": "yo"},
            },
        }

        event = normalize(payload)

        assert isinstance(event, MessageReceived)
        assert event.remote_jid == "5511@s.whatsapp.net"
        assert event.from_me is True
        assert event.external_id == "M2"
        assert event.message_type == "text"

    def test_missing_remote_jid_is_unrecognized(self):
        payload = {"event": "messages.upsert", "instance": "abc", "data": {"key": {"id": "M3"}}}

        event = normalize(payload)

        assert isinstance(event, UnrecognizedEvent)
        assert event.reason == "missing remote identifier"
        assert event.instance == "abc"

    def test_missing_instance_is_unrecognized(self):
        payload = {"event": "messages.upsert", "data": {"key": {"remoteJid": "1@x"}}}

        event = normalize(payload)

        assert isinstance(event, UnrecognizedEvent)
        assert event.reason == "missing instance"


class TestConnectionAndQr:
    def test_connection_update(self):
        event = normalize({"event": "connection.update", "instance": "abc", "data": {"state": "open"}})
        assert event == ConnectionChanged(instance="abc", state="open")

    def test_connection_update_top_level_state(self):
        event = normalize({"event": "CONNECTION_UPDATE", "instance": "abc", "state": "close"})
        assert event == ConnectionChanged(instance="abc", state="close")

    def test_connection_without_state(self):
        event = normalize({"event": "CONNECTION_UPDATE", "instance": "abc", "data": {}})
        assert isinstance(event, UnrecognizedEvent)

    def test_qr_nested_base64_gets_data_uri(self):
        event = normalize(
            {"event": "qrcode.updated", "instance": "abc", "data": {"qrcode": {"base64": "AAAA"}}}
        )
        assert event == QrCodeIssued(instance="abc", qr_code="data:image/png;base64,AAAA")

    def test_qr_existing_data_uri_kept(self):
        event = normalize(
            {"event": "QRCODE_UPDATED", "instance": "abc", "data": {"base64": "data:image/png;base64,BB"}}
        )
        assert event.qr_code == "data:image/png;base64,BB"


class TestStatusAndMetadata:
    def test_status_updates(self):
        payload = {
            "event": "messages.update",
            "instance": "abc",
            "data": {
                "updates": [
                    {"key": {"id": "M1", "remoteJid": "1@x"}, "status": "DELIVERY_ACK"},
                    {"key": {"id": "M2"}, "update": {"status": 4}},
                    {"key": {"id": "M3"}, "status": "UNKNOWN"},
                ]
            },
        }

        event = normalize(payload)

        assert isinstance(event, MessageStatusChanged)
        assert [(u.external_id, u.status) for u in event.updates] == [
            ("M1", MessageStatus.DELIVERED),
            ("M2", MessageStatus.READ),
        ]

    def test_status_flat_entry(self):
        payload = {
            "event": "MESSAGES_UPDATE",
            "instance": "abc",
            "data": {"keyId": "M9", "remoteJid": "1@x", "status": "SERVER_ACK"},
        }
        event = normalize(payload)
        assert event.updates[0].external_id == "M9"
        assert event.updates[0].status is MessageStatus.SENT

    def test_status_tokens(self):
        assert map_status_token("ERROR") is MessageStatus.FAILED
        assert map_status_token(1) is MessageStatus.PENDING
        assert map_status_token("played") is MessageStatus.READ
        assert map_status_token(True) is None

    def test_chat_metadata(self):
        payload = {
            "event": "contacts.update",
            "instance": "abc",
            "data": [
                {"remoteJid": "1@s.whatsapp.net", "pushName": "Bia", "profilePicUrl": "http://p"},
                {"nothing": True},
            ],
        }

        event = normalize(payload)

        assert isinstance(event, ChatMetadataChanged)
        assert len(event.chats) == 1
        assert event.chats[0].name == "Bia"
        assert event.chats[0].avatar_url == "http://p"


class TestUnrecognized:
    def test_unknown_event_type(self):
        event = normalize({"event": "presence.update", "instance": "abc"})
        assert isinstance(event, UnrecognizedEvent)
        assert event.event == "PRESENCE_UPDATE"

    def test_not_an_object(self):
        assert isinstance(normalize(["x"]), UnrecognizedEvent)

    def test_missing_event(self):
        assert normalize({"instance": "abc"}).reason == "missing event type"
