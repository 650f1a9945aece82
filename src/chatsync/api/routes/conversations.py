"""Conversation commands.

POST  /conversations/{id}/messages  → send text
POST  /conversations/{id}/backfill  → replay provider history
PATCH /conversations/{id}           → labels / archive / pin
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict

from chatsync.api.deps import get_context, parse_uuid, require_api_key
from chatsync.context import SyncContext
from chatsync.domain.conversations import update_flags
from chatsync.domain.outbound import send_message
from chatsync.domain.sync import backfill_conversation

router = APIRouter(
    prefix="/conversations", tags=["conversations"], dependencies=[Depends(require_api_key)]
)


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: str


class UpdateConversationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    labels: list[str] | None = None
    is_archived: bool | None = None
    is_pinned: bool | None = None


@router.post("/{conversation_id}/messages", status_code=201)
def post_message(
    conversation_id: str,
    body: SendMessageRequest,
    ctx: SyncContext = Depends(get_context),
) -> dict:
    """Send text on a conversation.

    The message is stored before the provider call; a provider failure
    still answers 201 with status "failed".
    """
    return send_message(ctx, parse_uuid(conversation_id, "conversation ID"), body.content)


@router.post("/{conversation_id}/backfill")
def backfill(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=100),
    ctx: SyncContext = Depends(get_context),
) -> dict:
    inserted = backfill_conversation(ctx, parse_uuid(conversation_id, "conversation ID"), limit)
    return {"success": True, "messages_inserted": inserted}


@router.patch("/{conversation_id}")
def patch_conversation(
    conversation_id: str,
    body: UpdateConversationRequest,
    ctx: SyncContext = Depends(get_context),
) -> dict:
    return update_flags(
        ctx,
        parse_uuid(conversation_id, "conversation ID"),
        labels=body.labels,
        is_archived=body.is_archived,
        is_pinned=body.is_pinned,
    )
