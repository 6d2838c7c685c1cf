"""Single-slot cache for the resolved target chat."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.chat_keys import normalize_name
from core.config import ChatRef
from core.ports import ChatClientPort

LOGGER = logging.getLogger(__name__)


class TargetCache:
    """Holds the target chat id once known.

    Seeded from a configured id; otherwise filled by the first successful
    name lookup and kept until ``reset`` is called with a new configuration.
    Concurrent misses share one chat lookup.
    """

    def __init__(self, target: ChatRef) -> None:
        self._configured = target
        self._id: Optional[str] = None
        self._name: Optional[str] = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self.reset(target)

    def reset(self, target: ChatRef) -> None:
        self._generation += 1
        self._configured = target
        self._id = target.id or None
        self._name = target.name or None

    @property
    def cached_id(self) -> Optional[str]:
        return self._id

    @property
    def cached_name(self) -> Optional[str]:
        return self._name

    async def resolve(self, client: ChatClientPort) -> Optional[str]:
        """Return the target id, looking it up by group name on a cache miss."""

        if self._id:
            return self._id

        async with self._lock:
            # Another caller may have filled the slot while we waited.
            if self._id:
                return self._id

            wanted = normalize_name(self._configured.name)
            if not wanted:
                return None

            generation = self._generation
            chats = await client.get_chats()
            if generation != self._generation:
                # Configuration changed mid-lookup; the result is stale.
                return self._id

            for chat in chats:
                if chat.is_group and chat.id and normalize_name(chat.name) == wanted:
                    self._id = chat.id
                    self._name = chat.name or self._configured.name
                    LOGGER.info("Resolved target %r to %s", self._name, self._id)
                    return self._id
            return None
