"""Core message routing.

The router enforces a strict order, stopping at the first failing check:
1) Own messages are dropped unless allowOwn is set
2) Non-group chats are dropped
3) Chats that are not configured sources are dropped
4) Bodies without a keyword are dropped
5) The target id is resolved (cached, or looked up by group name)
6) A prefixed copy is sent to the target

Send failures are recorded on the runtime context and never retried.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Optional

from core.models import MessageContext, RouteResult
from core.ports import ChatClientPort
from core.runtime import RuntimeContext

LOGGER = logging.getLogger(__name__)

DUPLICATE = "duplicate"
OWN_MESSAGE = "own_message"
NOT_GROUP = "not_group"
NOT_SOURCE = "not_source"
NO_KEYWORD = "no_keyword"
NO_TARGET = "target_unresolved"
SEND_FAILED = "send_failed"
FORWARDED = "forwarded"

PREVIEW_CHARS = 120


def format_relay_text(chat_name: str, body: str) -> str:
    return f"[{chat_name}] {body}"


class _RecentIds:
    """Bounded memory of message ids already routed."""

    def __init__(self, capacity: int) -> None:
        self._order: deque[str] = deque()
        self._ids: set[str] = set()
        self._capacity = capacity

    def add(self, message_id: str) -> bool:
        """Remember an id; False if it was already known."""

        if message_id in self._ids:
            return False
        self._ids.add(message_id)
        self._order.append(message_id)
        if len(self._order) > self._capacity:
            self._ids.discard(self._order.popleft())
        return True


class MessageRouter:
    """Decides forward/drop for each inbound message and sends matches."""

    def __init__(
        self,
        runtime: RuntimeContext,
        client: ChatClientPort,
        recent_capacity: int = 1000,
    ) -> None:
        self._runtime = runtime
        self._client = client
        self._recent = _RecentIds(recent_capacity)

    async def resolve_target(self) -> Optional[str]:
        return await self._runtime.target_cache.resolve(self._client)

    async def handle(self, context: MessageContext) -> RouteResult:
        """Route one message context; never raises for send failures."""

        # The same message can arrive as both "message" and "message_create".
        if context.message_id and not self._recent.add(context.message_id):
            return RouteResult(forwarded=False, reason=DUPLICATE)

        whatsapp = self._runtime.config.whatsapp
        filters = self._runtime.filters
        chat = context.chat

        if context.from_me and not whatsapp.allow_own:
            return self._drop(OWN_MESSAGE, "Ignore own message in %r", chat.name)

        if not chat.is_group:
            return self._drop(NOT_GROUP, "Ignore %r (not a group)", chat.name)

        if not filters.is_source(chat.id, chat.name):
            return self._drop(NOT_SOURCE, "Ignore %r (not in sources)", chat.name)

        text = context.body or ""
        if not filters.matches_keyword(text):
            return self._drop(
                NO_KEYWORD,
                "No keyword match from %r: %s",
                chat.name,
                text[:PREVIEW_CHARS],
            )

        try:
            target_id = await self.resolve_target()
        except Exception as exc:
            LOGGER.exception("Target lookup failed")
            self._runtime.record_error(f"target lookup failed: {exc}")
            return RouteResult(forwarded=False, reason=NO_TARGET)
        if not target_id:
            return self._drop(NO_TARGET, "Target not resolved yet")

        relay_text = format_relay_text(chat.name, text)
        try:
            await self._client.send_message(target_id, relay_text)
        except Exception as exc:
            LOGGER.exception("Error while forwarding message from %r", chat.name)
            self._runtime.record_error(f"send failed: {exc!r}")
            return RouteResult(forwarded=False, reason=SEND_FAILED, target_id=target_id)

        cache = self._runtime.target_cache
        LOGGER.info(
            "Sent to %r from %r",
            cache.cached_name or whatsapp.target.name or "target",
            chat.name,
        )
        return RouteResult(forwarded=True, reason=FORWARDED, target_id=target_id, text=relay_text)

    def _drop(self, reason: str, message: str, *args: object) -> RouteResult:
        level = logging.INFO if self._runtime.config.whatsapp.debug else logging.DEBUG
        LOGGER.log(level, message, *args)
        return RouteResult(forwarded=False, reason=reason)
