"""Evolution API webhook.

Deliveries are acknowledged with 200 before processing: the provider's
retry/timeout behaviour must not depend on local latency. Processing runs
as a background task and its errors are logged only.

Security:
- Optional shared secret via ``?token=`` or X-Webhook-Token, compared in
  constant time, checked before the body is read
- Logs contain NO PII (identifiers are hashed)
"""

import hmac
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request, Response

from chatsync.api.deps import get_context
from chatsync.context import SyncContext
from chatsync.domain.events import process_event
from chatsync.observability.correlation import correlation_scope, get_correlation_id
from chatsync.observability.logging import get_logger
from chatsync.observability.redaction import safe_log_context
from chatsync.whatsapp.evolution_adapter import normalize

router = APIRouter(prefix="/webhook", tags=["webhooks"])

logger = get_logger(__name__)


def process_delivery(ctx: SyncContext, payload: Any, correlation_id: str) -> None:
    """Normalize and apply one delivery. Never raises."""
    with correlation_scope(correlation_id):
        try:
            process_event(ctx, normalize(payload))
        except Exception:
            logger.exception(
                "webhook processing failed",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )


@router.post("/evolution")
async def evolution_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    token: str | None = Query(None),
    x_webhook_token: str | None = Header(None, alias="X-Webhook-Token"),
    ctx: SyncContext = Depends(get_context),
) -> Response:
    """Receive an Evolution API webhook delivery.

    Returns:
        200 "OK" once the delivery is accepted for processing.
        400 if the body is not valid JSON.
        401 if a secret is configured and the token does not match.
    """
    correlation_id = get_correlation_id()

    expected = ctx.settings.webhook_secret_token
    if expected:
        supplied = token if token is not None else x_webhook_token
        if not supplied or not hmac.compare_digest(supplied, expected):
            logger.warning(
                "evolution webhook token mismatch",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )
            return Response(status_code=401, content="unauthorized")

    try:
        payload: Any = await request.json()
    except ValueError:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid json")

    background_tasks.add_task(process_delivery, ctx, payload, correlation_id)
    return Response(status_code=200, content="OK")
