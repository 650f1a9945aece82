"""Identity resolution - find-or-create a Contact per (inbox, remote JID).

Resolution strategy
───────────────────
  1. Look up by (inbox_id, remote_jid).
  2. Found → refresh name/avatar when a non-empty hint differs; created=False.
  3. Not found → INSERT with kind from the JID suffix; created=True.
  4. INSERT hits the (inbox_id, remote_jid) unique constraint (a concurrent
     delivery won the race) → re-read the winner; created=False.

Safe to call redundantly with identical arguments.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from chatsync.context import SyncContext
from chatsync.domain.errors import ValidationError
from chatsync.infra.store import DuplicateRecordError
from chatsync.observability.logging import get_logger
from chatsync.observability.redaction import hash_identifier, safe_log_context
from chatsync.whatsapp.evolution_client import parse_profile_picture
from chatsync.whatsapp.jid import InvalidJidError, kind_of, local_part, to_send_number, validate_jid
from chatsync.whatsapp.models import ContactKind

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResolvedContact:
    id: str
    created: bool


def _refresh(
    ctx: SyncContext,
    contact: dict[str, Any],
    name_hint: str | None,
    avatar_url: str | None,
) -> None:
    changes: dict[str, Any] = {}
    if name_hint and name_hint.strip() and name_hint.strip() != contact.get("name"):
        changes["name"] = name_hint.strip()
    if avatar_url and avatar_url != contact.get("avatar_url"):
        changes["avatar_url"] = avatar_url
    if changes:
        ctx.store.update("contacts", contact["id"], changes)


def resolve_contact(
    ctx: SyncContext,
    inbox: dict[str, Any],
    remote_jid: str,
    name_hint: str | None = None,
    kind: ContactKind | str | None = None,
    avatar_url: str | None = None,
) -> ResolvedContact:
    """Resolve or create the contact for a remote identifier.

    Args:
        ctx: Engine context.
        inbox: Inbox row (needs id and organization_id).
        remote_jid: Provider-native identifier.
        name_hint: Display name to store or refresh. Optional.
        kind: Forced contact kind. Defaults to the one implied by the suffix.
        avatar_url: Avatar to store or refresh. Optional.

    Returns:
        ResolvedContact(id, created).

    Raises:
        ValidationError: If remote_jid is malformed.
    """
    try:
        jid = validate_jid(remote_jid)
    except InvalidJidError as e:
        raise ValidationError(str(e)) from e

    existing = ctx.store.find_one("contacts", inbox_id=inbox["id"], remote_jid=jid)
    if existing is not None:
        _refresh(ctx, existing, name_hint, avatar_url)
        return ResolvedContact(id=existing["id"], created=False)

    contact_kind = ContactKind(kind) if kind else kind_of(jid)
    values = {
        "inbox_id": inbox["id"],
        "organization_id": inbox.get("organization_id"),
        "remote_jid": jid,
        "name": (name_hint or "").strip() or local_part(jid),
        "contact_type": contact_kind.value,
        "avatar_url": avatar_url,
    }
    try:
        row = ctx.store.insert("contacts", values)
    except DuplicateRecordError:
        winner = ctx.store.find_one("contacts", inbox_id=inbox["id"], remote_jid=jid)
        if winner is None:
            raise
        _refresh(ctx, winner, name_hint, avatar_url)
        return ResolvedContact(id=winner["id"], created=False)

    logger.info(
        "contact created",
        extra={
            "extra_fields": safe_log_context(
                inbox_id=inbox["id"],
                jid_hash=hash_identifier(jid),
                contact_type=contact_kind.value,
            )
        },
    )
    return ResolvedContact(id=row["id"], created=True)


def refresh_avatar(ctx: SyncContext, inbox: dict[str, Any], contact: dict[str, Any]) -> str | None:
    """Fetch and store a contact's avatar from the provider.

    Best-effort: a provider failure leaves the stored avatar untouched.

    Returns:
        The avatar URL now stored, or None.
    """
    instance = inbox.get("instance_name")
    if not instance or not contact.get("remote_jid"):
        return contact.get("avatar_url")
    result = ctx.provider.fetch_profile_picture(instance, to_send_number(contact["remote_jid"]))
    url = parse_profile_picture(result.data) if result.success else None
    if url and url != contact.get("avatar_url"):
        ctx.store.update("contacts", contact["id"], {"avatar_url": url})
        return url
    return contact.get("avatar_url")
