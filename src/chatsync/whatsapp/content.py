"""Display content for provider message bodies.

Bodies arrive as one of several typed shapes (``conversation``,
``extendedTextMessage``, ``imageMessage`` ...). Text wins over captions and
captions win over placeholders; an unrecognized body yields None and the
caller must not persist the message.
"""

from typing import Any

PLACEHOLDER_IMAGE = "[Image]"
PLACEHOLDER_VIDEO = "[Video]"
PLACEHOLDER_AUDIO = "[Audio]"
PLACEHOLDER_DOCUMENT = "[Document]"
PLACEHOLDER_STICKER = "[Sticker]"
PLACEHOLDER_CONTACT = "[Contact]"
PLACEHOLDER_LOCATION = "[Location]"

# Media types whose caption is shown instead of the placeholder
_CAPTIONED = ("imageMessage", "videoMessage", "documentMessage")


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _section(message: dict[str, Any], key: str) -> dict[str, Any] | None:
    section = message.get(key)
    if section is None:
        return None
    return section if isinstance(section, dict) else {}


def _labelled(placeholder: str, detail: Any) -> str:
    label = _text(detail)
    return f"{placeholder} {label.strip()}" if label else placeholder


def extract_content(message: Any) -> str | None:
    """Map a provider message body to display text or a typed placeholder.

    Args:
        message: The ``message`` object of a provider payload, a wrapper
                 holding it under ``message``, or a bare string.

    Returns:
        Display string, or None when no known shape is present.
    """
    if isinstance(message, str):
        return message
    if not isinstance(message, dict):
        return None
    if isinstance(message.get("message"), (dict, str)):
        message = message["message"]
        if isinstance(message, str):
            return message

    text = _text(message.get("conversation"))
    if text:
        return text

    extended = _section(message, "extendedTextMessage")
    if extended is not None and _text(extended.get("text")):
        return extended["text"]

    for key in _CAPTIONED:
        section = _section(message, key)
        if section is not None and _text(section.get("caption")):
            return section["caption"]

    if _section(message, "imageMessage") is not None:
        return PLACEHOLDER_IMAGE
    if _section(message, "videoMessage") is not None:
        return PLACEHOLDER_VIDEO
    if _section(message, "audioMessage") is not None:
        return PLACEHOLDER_AUDIO
    document = _section(message, "documentMessage")
    if document is not None:
        return _labelled(PLACEHOLDER_DOCUMENT, document.get("fileName") or document.get("title"))
    if _section(message, "stickerMessage") is not None:
        return PLACEHOLDER_STICKER
    contact = _section(message, "contactMessage")
    if contact is not None:
        return _labelled(PLACEHOLDER_CONTACT, contact.get("displayName"))
    if _section(message, "locationMessage") is not None:
        return PLACEHOLDER_LOCATION
    return None


def extract_snapshot_content(entry: dict[str, Any]) -> str | None:
    """Content for a message taken from a chat snapshot or history page.

    Snapshot entries sometimes carry a flattened ``text``/``body`` instead of
    a typed body.
    """
    content = extract_content(entry)
    if content is not None:
        return content
    for key in ("text", "body"):
        value = entry.get(key)
        if isinstance(value, str):
            return value
    return None
