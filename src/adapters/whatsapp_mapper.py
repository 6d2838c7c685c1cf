"""Map WhatsApp bridge payloads into core models."""

from __future__ import annotations

from typing import Any, Optional

from core.chat_keys import is_group_id, serialize_id
from core.models import ChatInfo, ClientEvent, MessageContext

MESSAGE_EVENTS = {"message", "message_create"}


def build_chat(payload: dict[str, Any], fallback_id: str = "") -> ChatInfo:
    """Build ChatInfo from a bridge chat object.

    ``isGroup`` is trusted when present; otherwise the ``@g.us`` id suffix
    decides.
    """

    chat_id = serialize_id(payload.get("id")) or fallback_id
    is_group = payload.get("isGroup")
    if is_group is None:
        is_group = is_group_id(chat_id)
    name = payload.get("name") or payload.get("formattedTitle") or ""
    return ChatInfo(id=chat_id, name=str(name).strip(), is_group=bool(is_group))


def build_context(payload: dict[str, Any]) -> MessageContext:
    """Build a MessageContext from a bridge message object."""

    from_me = bool(payload.get("fromMe", False))
    # Own messages are addressed "to" the chat, incoming ones come "from" it.
    raw_chat_id = payload.get("to") if from_me else payload.get("from")
    fallback_id = serialize_id(raw_chat_id)
    chat_payload = payload.get("chat") or {}
    chat = build_chat(chat_payload, fallback_id=fallback_id)

    return MessageContext(
        message_id=serialize_id(payload.get("id")),
        from_me=from_me,
        chat=chat,
        body=str(payload.get("body") or ""),
    )


def build_event(data: dict[str, Any]) -> Optional[ClientEvent]:
    """Turn one decoded WebSocket frame into a ClientEvent, if recognised."""

    kind = data.get("type")
    if not kind:
        return None
    kind = str(kind)
    if kind in MESSAGE_EVENTS:
        message = data.get("message")
        if not isinstance(message, dict):
            return None
        return ClientEvent(kind=kind, payload=data, message=build_context(message))
    return ClientEvent(kind=kind, payload=data)


def build_chats(payload: Any) -> list[ChatInfo]:
    """Parse a ``GET /chats`` response body (list or ``{"chats": [...]}``)."""

    if isinstance(payload, dict):
        payload = payload.get("chats", [])
    if not isinstance(payload, list):
        return []
    return [build_chat(item) for item in payload if isinstance(item, dict)]
