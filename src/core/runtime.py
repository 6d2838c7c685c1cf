"""Single owner of the live configuration and the state derived from it."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from core.config import AppConfig
from core.filters import FilterState, build_filter_state
from core.target_cache import TargetCache

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class QrSnapshot:
    """Latest pairing code from the client."""

    raw: str
    data_url: Optional[str]
    at: int


class RuntimeContext:
    """Configuration, filters, target cache and client status in one place.

    Everything runs on one event loop, so ``replace`` swapping all derived
    state in a single synchronous call is enough to keep readers consistent.
    """

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._filters = build_filter_state(config.whatsapp)
        self.target_cache = TargetCache(config.whatsapp.target)
        self.ready = False
        self.last_error: Optional[str] = None
        self.qr: Optional[QrSnapshot] = None

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def filters(self) -> FilterState:
        return self._filters

    def replace(self, config: AppConfig) -> AppConfig:
        """Swap in a new configuration and rebuild derived state.

        Returns the previous configuration.
        """

        previous = self._config
        self._config = config
        self._filters = build_filter_state(config.whatsapp)
        self.target_cache.reset(config.whatsapp.target)
        LOGGER.info(
            "Configuration applied: %s sources, %s keywords",
            len(config.whatsapp.sources),
            len(self._filters.keywords),
        )
        return previous

    def set_ready(self, ready: bool) -> None:
        self.ready = ready

    def record_error(self, message: str) -> None:
        self.last_error = message.strip()

    def update_qr(self, raw: str, data_url: Optional[str]) -> None:
        self.qr = QrSnapshot(raw=raw, data_url=data_url, at=int(time.time() * 1000))
