"""Tests for time helpers."""

from datetime import datetime, timezone

from chatsync.infra.time import from_epoch_seconds, utc_now


def test_utc_now_is_aware():
    assert utc_now().tzinfo is not None


class TestFromEpochSeconds:
    def test_int(self):
        assert from_epoch_seconds(1700000000) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_numeric_string(self):
        assert from_epoch_seconds("1700000000") == from_epoch_seconds(1700000000)

    def test_milliseconds(self):
        assert from_epoch_seconds(1700000000000) == from_epoch_seconds(1700000000)

    def test_long_wrapper(self):
        assert from_epoch_seconds({"low": 1700000000, "high": 0}) == from_epoch_seconds(1700000000)

    def test_unparseable(self):
        assert from_epoch_seconds("soon") is None
        assert from_epoch_seconds(None) is None
        assert from_epoch_seconds(0) is None
        assert from_epoch_seconds(True) is None
