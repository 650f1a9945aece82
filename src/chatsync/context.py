"""Explicit dependencies handed to every engine component."""

from __future__ import annotations

from dataclasses import dataclass

from chatsync.infra.store import Store
from chatsync.settings import Settings, load_settings
from chatsync.whatsapp.evolution_client import ProviderClient


@dataclass(frozen=True)
class SyncContext:
    """Store handle, provider client and settings for one process.

    Tests build one around MemoryStore and a fake provider; production uses
    build_default_context().
    """

    store: Store
    provider: ProviderClient
    settings: Settings


def build_default_context(settings: Settings | None = None) -> SyncContext:
    """PostgreSQL store + Evolution API client configured from the environment."""
    from chatsync.infra.postgres_store import PostgresStore
    from chatsync.whatsapp.evolution_client import EvolutionClient

    settings = settings or load_settings()
    return SyncContext(
        store=PostgresStore(),
        provider=EvolutionClient(settings),
        settings=settings,
    )
