"""Core configuration dataclasses.

Parsing, merging and persistence live in ``settings``; these dataclasses only
define the normalized shape the router and dashboard consume. ``to_dict``
returns the camelCase JSON layout stored in config.json.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

MODES = ("copy", "forward")


@dataclass(frozen=True)
class WebConfig:
    """Dashboard listen address."""

    bind: str = "127.0.0.1"
    port: int = 3000

    def to_dict(self) -> dict[str, Any]:
        return {"bind": self.bind, "port": self.port}


@dataclass(frozen=True)
class ChatRef:
    """A chat referenced by serialized id, display name, or both."""

    id: str = ""
    name: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.id and not self.name

    @property
    def label(self) -> str:
        return self.name or self.id

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class WhatsAppConfig:
    """Relay settings: which groups to watch, what to match, where to send."""

    mode: str = "copy"
    allow_own: bool = False
    debug: bool = False
    keywords: tuple[str, ...] = ()
    target: ChatRef = field(default_factory=ChatRef)
    sources: tuple[ChatRef, ...] = ()
    puppeteer_executable_path: str = ""
    headless: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "allowOwn": self.allow_own,
            "debug": self.debug,
            "keywords": list(self.keywords),
            "target": self.target.to_dict(),
            "sources": [source.to_dict() for source in self.sources],
            "puppeteerExecutablePath": self.puppeteer_executable_path,
            "headless": self.headless,
        }


@dataclass(frozen=True)
class LogFileConfig:
    enabled: bool = False
    path: str = "logs/wa-relay.log"
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 5

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "path": self.path,
            "max_bytes": self.max_bytes,
            "backup_count": self.backup_count,
        }


@dataclass(frozen=True)
class LoggingConfig:
    """Logging options applied once at startup."""

    enabled: bool = True
    level: str = "INFO"
    console: bool = True
    file: LogFileConfig = field(default_factory=LogFileConfig)
    redact_enabled: bool = False
    redact_patterns: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "level": self.level,
            "console": self.console,
            "file": self.file.to_dict(),
            "redact": {
                "enabled": self.redact_enabled,
                "patterns": list(self.redact_patterns),
            },
        }


@dataclass(frozen=True)
class AppConfig:
    """Complete normalized configuration."""

    web: WebConfig = field(default_factory=WebConfig)
    whatsapp: WhatsAppConfig = field(default_factory=WhatsAppConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> dict[str, Any]:
        return {
            "web": self.web.to_dict(),
            "whatsapp": self.whatsapp.to_dict(),
            "logging": self.logging.to_dict(),
        }
