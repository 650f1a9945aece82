"""Shared pytest fixtures for chatsync tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from helpers import FakeProvider, make_context, seed_inbox  # noqa: E402


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def ctx(provider):
    return make_context(provider)


@pytest.fixture
def inbox(ctx):
    return seed_inbox(ctx)


@pytest.fixture
def connected_inbox(ctx):
    return seed_inbox(ctx, connection_status="connected")
