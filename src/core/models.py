"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to the bridge's JSON payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ChatInfo:
    """Chat metadata as reported by the WhatsApp client."""

    id: str
    name: str
    is_group: bool


@dataclass(frozen=True)
class MessageContext:
    """Minimal message context used by the router."""

    message_id: str
    from_me: bool
    chat: ChatInfo
    body: str


@dataclass(frozen=True)
class ClientEvent:
    """One notification from the client event stream."""

    kind: str
    payload: dict[str, Any] = field(default_factory=dict)
    message: Optional[MessageContext] = None


@dataclass(frozen=True)
class RouteResult:
    """Outcome of routing a single message."""

    forwarded: bool
    reason: str
    target_id: Optional[str] = None
    text: Optional[str] = None
