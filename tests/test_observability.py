"""Tests for observability utilities."""

import json
import logging

from chatsync.observability.correlation import correlation_scope, get_correlation_id
from chatsync.observability.logging import JsonFormatter, get_logger
from chatsync.observability.redaction import (
    hash_identifier,
    redact_string,
    redact_value,
    safe_log_context,
)


class TestRedaction:
    def test_redact_jid(self):
        result = redact_string("from 5511999998888@s.whatsapp.net")
        assert "5511999998888" not in result
        assert "[REDACTED]" in result

    def test_redact_group_jid(self):
        assert "120363" not in redact_string("chat 120363000000@g.us")

    def test_redact_phone_number(self):
        result = redact_string("Call me at +55 11 99999-8888")
        assert "99999" not in result

    def test_redact_email(self):
        assert "user@example.com" not in redact_string("Email: user@example.com")

    def test_redact_value_dict_only_keys(self):
        result = redact_value({"conversation": "secret text", "pushName": "Ana"})
        assert "secret text" not in result
        assert "Ana" not in result
        assert "conversation" in result

    def test_redact_value_list_only_len(self):
        assert redact_value(["a", "b", "c"]) == "list(len=3)"

    def test_scalars(self):
        assert redact_value(None) == "null"
        assert redact_value(True) == "true"
        assert redact_value(3) == "3"

    def test_safe_log_context(self):
        ctx = safe_log_context(phone="+5511999998888", count=42)
        assert "[REDACTED]" in ctx["phone"]
        assert ctx["count"] == "42"

    def test_hash_identifier_is_stable_and_short(self):
        digest = hash_identifier("5511@s.whatsapp.net")
        assert digest == hash_identifier("5511@s.whatsapp.net")
        assert len(digest) == 12
        assert "5511" not in digest


class TestCorrelation:
    def test_scope_binds_and_restores(self):
        before = get_correlation_id()
        with correlation_scope("cid-1") as cid:
            assert cid == "cid-1"
            assert get_correlation_id() == "cid-1"
        assert get_correlation_id() == before

    def test_scope_generates_when_empty(self):
        with correlation_scope() as cid:
            assert cid
            assert get_correlation_id() == cid


class TestJsonLogging:
    def _record(self, **extra):
        record = logging.LogRecord("chatsync.test", logging.INFO, __file__, 1, "hello", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_format_includes_extra_fields_and_correlation(self):
        with correlation_scope("cid-9"):
            line = JsonFormatter().format(self._record(extra_fields={"inbox_id": "i1"}))
        payload = json.loads(line)
        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["correlationId"] == "cid-9"
        assert payload["inbox_id"] == "i1"

    def test_no_correlation_key_outside_scope(self):
        payload = json.loads(JsonFormatter().format(self._record()))
        assert "correlationId" not in payload

    def test_get_logger_installs_one_handler(self):
        logger = get_logger("chatsync.test.single")
        get_logger("chatsync.test.single")
        assert len(logger.handlers) == 1
        assert logger.propagate is False
