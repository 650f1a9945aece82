"""Request dependencies shared by the command routes."""

from __future__ import annotations

import hmac
import uuid

from fastapi import Depends, Header, HTTPException, Request

from chatsync.context import SyncContext
from chatsync.domain.errors import ValidationError


def get_context(request: Request) -> SyncContext:
    """Engine context attached by create_app()."""
    return request.app.state.context


def require_api_key(
    x_api_key: str | None = Header(None, alias="X-Api-Key"),
    ctx: SyncContext = Depends(get_context),
) -> None:
    """Shared-key guard for command routes. Disabled when no key is configured.

    Raises:
        HTTPException: 401 if the key is missing or does not match.
    """
    expected = ctx.settings.api_key
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="unauthorized")


def parse_uuid(value: str, label: str = "id") -> str:
    """Canonical UUID string, or ValidationError (mapped to 400)."""
    try:
        return str(uuid.UUID(value))
    except ValueError as e:
        raise ValidationError(f"invalid {label} format") from e
