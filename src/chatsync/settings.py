"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import quote

DEFAULT_EVOLUTION_BASE_URL = "http://localhost:8080"
DEFAULT_PORT = 3001


@dataclass(frozen=True)
class Settings:
    """Settings shared by the engine, the provider client and the HTTP app.

    Attributes:
        evolution_base_url: Evolution API base URL (no trailing slash).
        evolution_api_key: Global Evolution API key, sent as ``apikey`` header.
        webhook_base_url: Public base URL the provider posts webhooks to.
        webhook_secret_token: Shared secret expected on webhook deliveries.
                              Empty disables the check.
        api_key: Shared key guarding the command routes. Empty disables it.
        instance_prefix: Prefix for provider instance names.
        sync_chat_limit: Most recent chats replayed by a bulk sync.
        http_timeout: Provider request timeout (seconds).
    """

    evolution_base_url: str = DEFAULT_EVOLUTION_BASE_URL
    evolution_api_key: str = ""
    webhook_base_url: str = f"http://localhost:{DEFAULT_PORT}"
    webhook_secret_token: str = ""
    api_key: str = ""
    instance_prefix: str = "flunx"
    sync_chat_limit: int = 100
    http_timeout: float = 15.0

    @property
    def webhook_url(self) -> str:
        """Webhook target registered on every provider instance."""
        url = f"{self.webhook_base_url.rstrip('/')}/webhook/evolution"
        if self.webhook_secret_token:
            url = f"{url}?token={quote(self.webhook_secret_token, safe='')}"
        return url


def _first(env: Mapping[str, str], *names: str, default: str = "") -> str:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return default


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from the environment.

    Args:
        environ: Mapping to read instead of os.environ (tests).

    Returns:
        Frozen Settings instance.

    Raises:
        ValueError: If a numeric variable cannot be parsed.
    """
    env = os.environ if environ is None else environ
    port = _first(env, "PORT", default=str(DEFAULT_PORT))

    return Settings(
        evolution_base_url=_first(
            env, "EVOLUTION_API_URL", "EVOLUTION_BASE_URL", default=DEFAULT_EVOLUTION_BASE_URL
        ).rstrip("/"),
        evolution_api_key=_first(env, "EVOLUTION_API_KEY"),
        webhook_base_url=_first(
            env, "WEBHOOK_BASE_URL", "CHANNELS_API_PUBLIC_URL", default=f"http://localhost:{port}"
        ),
        webhook_secret_token=_first(env, "WEBHOOK_SECRET_TOKEN"),
        api_key=_first(env, "CHANNELS_API_KEY"),
        instance_prefix=_first(env, "INSTANCE_PREFIX", default="flunx"),
        sync_chat_limit=int(_first(env, "SYNC_CHAT_LIMIT", default="100")),
        http_timeout=float(_first(env, "EVOLUTION_HTTP_TIMEOUT", default="15")),
    )
