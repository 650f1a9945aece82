"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from chatsync.context import SyncContext, build_default_context
from chatsync.domain.errors import ChatSyncError, NotFoundError, ProviderError, ValidationError
from chatsync.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from chatsync.observability.logging import get_logger
from chatsync.observability.redaction import safe_log_context

from .routes import channels, conversations, inboxes, public, webhooks_evolution

logger = get_logger(__name__)


def _status_for(exc: ChatSyncError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ProviderError):
        return 502
    return 500


def create_app(context: SyncContext | None = None) -> FastAPI:
    """Create the FastAPI app.

    Args:
        context: Engine context. Defaults to PostgreSQL + Evolution API
                 configured from the environment.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="chatsync",
        docs_url=None,
        redoc_url=None,
    )
    app.state.context = context or build_default_context()

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    @app.exception_handler(ChatSyncError)
    async def domain_error_handler(request: Request, exc: ChatSyncError) -> JSONResponse:
        status = _status_for(exc)
        logger.warning(
            "request rejected",
            extra={
                "extra_fields": safe_log_context(
                    path=request.url.path, status=status, error_type=type(exc).__name__
                )
            },
        )
        return JSONResponse(status_code=status, content={"error": str(exc)})

    app.include_router(public.router)
    app.include_router(webhooks_evolution.router)
    app.include_router(channels.router)
    app.include_router(inboxes.router)
    app.include_router(conversations.router)

    return app
