"""Source and keyword filtering (core domain)."""

from __future__ import annotations

from dataclasses import dataclass

from core.chat_keys import normalize_name
from core.config import WhatsAppConfig


@dataclass(frozen=True)
class FilterState:
    """Lookup structures derived from the relay configuration."""

    source_ids: frozenset[str]
    source_names: frozenset[str]
    keywords: tuple[str, ...]

    def is_source(self, chat_id: str, chat_name: str) -> bool:
        """A chat is monitored when either its id or its name is configured."""

        if chat_id and chat_id in self.source_ids:
            return True
        name = normalize_name(chat_name)
        return bool(name) and name in self.source_names

    def matches_keyword(self, text: str) -> bool:
        """Case-insensitive substring match against any configured keyword.

        No word boundaries: ``"cat"`` matches ``"concatenate"``.
        """

        lowered = (text or "").lower()
        return any(keyword in lowered for keyword in self.keywords)


def build_filter_state(whatsapp: WhatsAppConfig) -> FilterState:
    """Normalize configured sources and keywords once per configuration."""

    source_ids = frozenset(source.id for source in whatsapp.sources if source.id)
    source_names = frozenset(
        normalize_name(source.name) for source in whatsapp.sources if normalize_name(source.name)
    )
    keywords = tuple(
        normalize_name(keyword) for keyword in whatsapp.keywords if normalize_name(keyword)
    )
    return FilterState(source_ids=source_ids, source_names=source_names, keywords=keywords)
