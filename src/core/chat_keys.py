"""Helpers for working with WhatsApp chat ids and names."""

from __future__ import annotations

from typing import Any, Iterable

from core.config import ChatRef

GROUP_SUFFIX = "@g.us"
SUMMARY_LIMIT = 5


def normalize_name(name: Any) -> str:
    """Return the comparison form of a chat name (trimmed, lower-cased)."""

    if name is None:
        return ""
    return str(name).strip().lower()


def serialize_id(raw_id: Any) -> str:
    """Return the serialized string for a raw chat or message id.

    whatsapp-web.js reports ids either as ``"123@g.us"`` or as an object with a
    ``_serialized`` field; both collapse to the same string.
    """

    if raw_id is None:
        return ""
    if isinstance(raw_id, dict):
        serialized = raw_id.get("_serialized")
        if serialized:
            return str(serialized).strip()
        user = raw_id.get("user")
        server = raw_id.get("server")
        if user and server:
            return f"{user}@{server}"
        return ""
    return str(raw_id).strip()


def is_group_id(chat_id: str) -> bool:
    return chat_id.endswith(GROUP_SUFFIX)


def summarize_chats(chats: Iterable[ChatRef], limit: int = SUMMARY_LIMIT) -> str:
    """Return a short comma-separated label list, e.g. ``"A, B (+3)"``."""

    labels = [chat.label for chat in chats if chat.label]
    summary = ", ".join(labels[:limit])
    if len(labels) > limit:
        summary += f" (+{len(labels) - limit})"
    return summary
