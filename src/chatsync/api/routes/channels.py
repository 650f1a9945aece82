"""Channel (provider instance) commands.

POST   /channels                 → provision instance + inbox
GET    /channels/{id}/info       → refresh profile/state from the provider
GET    /channels/{id}/qrcode     → current pairing QR
POST   /channels/{id}/reconnect  → replace the provider instance
DELETE /channels/{id}            → tear down instance, delete inbox
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from chatsync.api.deps import get_context, parse_uuid, require_api_key
from chatsync.context import SyncContext
from chatsync.domain import channels as lifecycle

router = APIRouter(prefix="/channels", tags=["channels"], dependencies=[Depends(require_api_key)])


class CreateChannelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    organization_id: str
    name: str


def _qrcode(qr: str | None) -> dict | None:
    return {"base64": qr} if qr else None


@router.post("", status_code=201)
def create_channel(
    body: CreateChannelRequest,
    ctx: SyncContext = Depends(get_context),
) -> dict:
    """Provision a WhatsApp channel and return its pairing QR."""
    result = lifecycle.provision_channel(ctx, body.organization_id, body.name)
    return {"success": True, "inbox": result.inbox, "qrcode": _qrcode(result.qr_code)}


@router.get("/{inbox_id}/info")
def channel_info(inbox_id: str, ctx: SyncContext = Depends(get_context)) -> dict:
    return lifecycle.refresh_channel_info(ctx, parse_uuid(inbox_id, "inbox ID"))


@router.get("/{inbox_id}/qrcode")
def channel_qrcode(inbox_id: str, ctx: SyncContext = Depends(get_context)) -> dict:
    qr, status = lifecycle.current_qr_code(ctx, parse_uuid(inbox_id, "inbox ID"))
    return {"qrCode": qr, "connection_status": status}


@router.post("/{inbox_id}/reconnect")
def reconnect_channel(inbox_id: str, ctx: SyncContext = Depends(get_context)) -> dict:
    result = lifecycle.reconnect_channel(ctx, parse_uuid(inbox_id, "inbox ID"))
    return {"success": True, "inbox": result.inbox, "qrcode": _qrcode(result.qr_code)}


@router.delete("/{inbox_id}")
def delete_channel(inbox_id: str, ctx: SyncContext = Depends(get_context)) -> dict:
    lifecycle.delete_channel(ctx, parse_uuid(inbox_id, "inbox ID"))
    return {"success": True, "message": "Channel deleted successfully"}
