"""Ports (interfaces) used by the core router.

Ports define the minimal contract the router and dashboard need from a chat
client so the core can be exercised with fakes and reused with other bridges.
"""

from __future__ import annotations

from typing import AsyncIterator, Protocol

from core.models import ChatInfo, ClientEvent


class ChatClientPort(Protocol):
    """Chat operations required by the router and the dashboard."""

    async def get_chats(self) -> list[ChatInfo]:
        ...

    async def send_message(self, chat_id: str, text: str) -> None:
        ...


class EventSourcePort(Protocol):
    """Stream of client notifications (qr, ready, message, ...)."""

    def events(self) -> AsyncIterator[ClientEvent]:
        ...
