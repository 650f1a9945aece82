"""Inbox commands."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from chatsync.api.deps import get_context, parse_uuid, require_api_key
from chatsync.context import SyncContext
from chatsync.domain.sync import sync_inbox

router = APIRouter(prefix="/inboxes", tags=["inboxes"], dependencies=[Depends(require_api_key)])


@router.post("/{inbox_id}/sync")
def sync(inbox_id: str, ctx: SyncContext = Depends(get_context)) -> dict:
    """Replay provider contacts, groups and recent chats into the inbox.

    Returns:
        Aggregate counters of the sync pass.
    """
    report = sync_inbox(ctx, parse_uuid(inbox_id, "inbox ID"))
    return {"success": True, **report.to_dict()}
