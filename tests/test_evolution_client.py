"""Tests for the Evolution API client (requests.Session mocked)."""

from unittest.mock import MagicMock

import pytest
import requests

from chatsync.settings import Settings
from chatsync.whatsapp.evolution_client import (
    EvolutionClient,
    parse_connect,
    parse_instance_info,
    parse_profile_picture,
    parse_sent_message_id,
    unwrap_list,
)


def response(status=200, body=None, raw=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    if raw is not None:
        resp.content = raw
        resp.json.side_effect = ValueError("not json")
    elif body is None:
        resp.content = b""
    else:
        resp.content = b"{}"
        resp.json.return_value = body
    return resp


@pytest.fixture
def session():
    s = MagicMock()
    s.headers = {}
    return s


@pytest.fixture
def client(session):
    settings = Settings(evolution_base_url="http://evo:8080/", evolution_api_key="k", http_timeout=5)
    return EvolutionClient(settings, session=session)


class TestTransport:
    def test_sets_auth_headers(self, client, session):
        assert session.headers["apikey"] == "k"
        assert session.headers["Content-Type"] == "application/json"

    def test_success(self, client, session):
        session.request.return_value = response(201, {"instance": {"instanceName": "x"}})

        result = client.create_instance("x")

        assert result.success is True
        assert result.status == 201
        session.request.assert_called_once_with(
            "POST",
            "http://evo:8080/instance/create",
            json={"instanceName": "x", "integration": "WHATSAPP-BAILEYS", "qrcode": True},
            params=None,
            timeout=5,
        )

    def test_non_2xx_reports_message(self, client, session):
        session.request.return_value = response(403, {"response": {}, "message": ["forbidden name"]})

        result = client.create_instance("x")

        assert result.success is False
        assert result.status == 403
        assert result.error == "forbidden name"

    def test_non_json_error_body(self, client, session):
        session.request.return_value = response(502, raw=b"<html>")

        result = client.connection_state("x")

        assert result.success is False
        assert result.data is None
        assert result.error == "HTTP 502"

    def test_network_error_never_raises(self, client, session):
        session.request.side_effect = requests.ConnectionError("refused")

        result = client.find_chats("x")

        assert result.success is False
        assert result.status is None
        assert result.error == "refused"

    def test_empty_success_body(self, client, session):
        session.request.return_value = response(200)
        result = client.delete_instance("x")
        assert result.success is True
        assert result.data is None


class TestEndpoints:
    def test_webhook_registration(self, client, session):
        session.request.return_value = response(200, {})

        client.set_webhook("x", "https://hook/webhook/evolution")

        method, url = session.request.call_args[0]
        webhook = session.request.call_args[1]["json"]["webhook"]
        assert (method, url) == ("POST", "http://evo:8080/webhook/set/x")
        assert webhook["enabled"] is True
        assert webhook["url"] == "https://hook/webhook/evolution"
        assert "MESSAGES_UPSERT" in webhook["events"]

    def test_send_text(self, client, session):
        session.request.return_value = response(201, {"key": {"id": "ABC"}})

        result = client.send_text("x", "5511999", "hello")

        assert parse_sent_message_id(result.data) == "ABC"
        assert session.request.call_args[1]["json"] == {"number": "5511999", "text": "hello"}

    def test_find_messages_clamps_limit(self, client, session):
        session.request.return_value = response(200, [])
        client.find_messages("x", "5511@s.whatsapp.net", limit=500)
        body = session.request.call_args[1]["json"]
        assert body == {"where": {"key": {"remoteJid": "5511@s.whatsapp.net"}}, "limit": 100}

    def test_fetch_instances_query(self, client, session):
        session.request.return_value = response(200, [])
        client.fetch_instance_info("x")
        assert session.request.call_args[1]["params"] == {"instanceName": "x"}


class TestParsers:
    def test_unwrap_list_shapes(self):
        assert unwrap_list([{"a": 1}, "junk"]) == [{"a": 1}]
        assert unwrap_list({"chats": [{"a": 1}]}, "chats") == [{"a": 1}]
        assert unwrap_list({"data": {"records": [{"a": 1}]}}, "records") == [{"a": 1}]
        assert unwrap_list(None) == []

    def test_parse_connect(self):
        parsed = parse_connect({"base64": "Q", "pairingCode": "ABCD", "instance": {"state": "connecting"}})
        assert (parsed.qr_code, parsed.pairing_code, parsed.state) == ("Q", "ABCD", "connecting")
        assert parse_connect({"qrcode": {"base64": "N"}}).qr_code == "N"
        assert parse_connect("junk").qr_code is None

    def test_parse_instance_info(self):
        info = parse_instance_info(
            [{"profileName": "Loja", "ownerJid": "55@s.whatsapp.net", "_count": {"Contact": 3}}]
        )
        assert info.profile_name == "Loja"
        assert info.contacts_count == 3
        assert info.chats_count == 0
        assert parse_instance_info([]) is None

    def test_parse_profile_picture(self):
        assert parse_profile_picture({"profilePictureUrl": "http://p"}) == "http://p"
        assert parse_profile_picture({"profilePictureUrl": None}) is None
