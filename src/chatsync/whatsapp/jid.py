"""Helpers for provider-native remote identifiers (JIDs).

Individuals look like ``5562999288205@s.whatsapp.net``; groups carry the
``@g.us`` suffix. Status broadcasts (``status@broadcast``) are not chats.
"""

import re

from .models import ContactKind

GROUP_SUFFIX = "@g.us"
INDIVIDUAL_SUFFIX = "@s.whatsapp.net"
STATUS_BROADCAST = "status@broadcast"

_DOMAIN = re.compile(r"@.*$")


class InvalidJidError(ValueError):
    """Raised when a remote identifier is malformed."""


def validate_jid(remote_jid: object) -> str:
    """Return the identifier stripped, or raise InvalidJidError.

    A valid identifier is a string with a non-empty local part before ``@``.
    """
    if not isinstance(remote_jid, str):
        raise InvalidJidError("remote identifier must be a string")
    value = remote_jid.strip()
    local, sep, domain = value.partition("@")
    if not sep or not local or not domain:
        raise InvalidJidError("malformed remote identifier")
    return value


def is_group(remote_jid: str) -> bool:
    return remote_jid.endswith(GROUP_SUFFIX)


def kind_of(remote_jid: str) -> ContactKind:
    """Contact kind implied by the identifier suffix."""
    return ContactKind.GROUP if is_group(remote_jid) else ContactKind.INDIVIDUAL


def local_part(remote_jid: str) -> str:
    """Strip the domain: ``5511999@s.whatsapp.net`` -> ``5511999``."""
    return _DOMAIN.sub("", remote_jid) or remote_jid


def to_send_number(remote_jid: str) -> str:
    """Recipient value for the send endpoint.

    Individuals are addressed by bare number; group JIDs are passed whole.
    """
    if is_group(remote_jid):
        return remote_jid
    return local_part(remote_jid).strip()


def format_brazilian_phone(jid: str | None) -> str:
    """Format a JID as a Brazilian phone number for display.

    Examples:
        5562999288205@s.whatsapp.net -> (62) 99928-8205
        556232345678@s.whatsapp.net  -> (62) 3234-5678

    Numbers that are neither mobile (11 digits) nor landline (10 digits)
    after dropping the country code are returned unformatted.
    """
    if not jid:
        return ""
    number = local_part(jid)
    if number.startswith("55"):
        number = number[2:]
    if len(number) == 11:
        return f"({number[:2]}) {number[2:7]}-{number[7:]}"
    if len(number) == 10:
        return f"({number[:2]}) {number[2:6]}-{number[6:]}"
    return number
