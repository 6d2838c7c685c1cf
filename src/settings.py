"""Configuration loading for wa-relay.

All user-editable settings (sources, keywords, target, dashboard address,
logging) live in a single JSON file beside the project. Environment variables
(and a local .env) seed a fresh install; once config.json exists it wins,
except for empty keyword/source/target entries which still fall back to the
environment.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from core.config import (
    MODES,
    AppConfig,
    ChatRef,
    LogFileConfig,
    LoggingConfig,
    WebConfig,
    WhatsAppConfig,
)

LOGGER = logging.getLogger(__name__)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

DEFAULT_CONFIG = AppConfig()

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}
_LIST_SEPARATORS = re.compile(r"[\n|]+")


class InvalidConfig(ValueError):
    """Raised when a configuration fails validation; nothing is saved."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Invalid config: " + "; ".join(errors))
        self.errors = list(errors)


def parse_bool(value: Any, default: bool = False) -> bool:
    """Parse 1/true/yes/on and 0/false/no/off; anything else is ``default``."""

    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return default


def split_list(value: Optional[str]) -> list[str]:
    """Split a newline- or pipe-delimited value into trimmed, non-empty items."""

    if not value:
        return []
    return [item.strip() for item in _LIST_SEPARATORS.split(str(value)) if item.strip()]


def _coerce_port(value: Any, default: int) -> int:
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        port = int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return default
    return port or default


def _coerce_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    """Build the environment layer in the config.json layout."""

    web = DEFAULT_CONFIG.web
    whatsapp = DEFAULT_CONFIG.whatsapp
    return {
        "web": {
            "bind": _clean(environ.get("WEB_BIND")) or web.bind,
            "port": _coerce_port(environ.get("WEB_PORT"), web.port),
        },
        "whatsapp": {
            "mode": (_clean(environ.get("MODE")) or whatsapp.mode).lower(),
            "allowOwn": parse_bool(environ.get("ALLOW_OWN"), whatsapp.allow_own),
            "debug": parse_bool(environ.get("DEBUG"), whatsapp.debug),
            "keywords": split_list(environ.get("KEYWORDS")),
            "target": {"id": "", "name": _clean(environ.get("TARGET_CHAT"))},
            "sources": [
                {"id": "", "name": name} for name in split_list(environ.get("SOURCE_CHATS"))
            ],
            "puppeteerExecutablePath": _clean(environ.get("PUPPETEER_EXECUTABLE_PATH")),
            "headless": parse_bool(environ.get("HEADLESS"), whatsapp.headless),
        },
        "logging": {
            "level": (_clean(environ.get("LOG_LEVEL")) or DEFAULT_CONFIG.logging.level).upper(),
        },
    }


def deep_merge(base: Any, override: Any) -> Any:
    """Merge ``override`` into ``base``.

    Dicts merge recursively, lists are replaced wholesale, and scalars from
    ``override`` win unless they are None. Keys missing from ``base`` are
    copied over as-is.
    """

    if isinstance(base, list):
        return override if isinstance(override, list) else base
    if isinstance(base, dict):
        merged = dict(base)
        if isinstance(override, dict):
            for key, value in override.items():
                merged[key] = deep_merge(base[key], value) if key in base else value
        return merged
    return base if override is None else override


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _expand_shorthand(raw: dict[str, Any]) -> dict[str, Any]:
    """Expand hand-written shortcuts: a "a|b" keyword string and a bare target name."""

    whatsapp = raw.get("whatsapp")
    if not isinstance(whatsapp, dict):
        return raw
    expanded = dict(whatsapp)
    if isinstance(expanded.get("keywords"), str):
        expanded["keywords"] = split_list(expanded["keywords"])
    if isinstance(expanded.get("target"), str):
        expanded["target"] = {"name": expanded["target"]}
    return {**raw, "whatsapp": expanded}


def _normalize_keywords(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    return tuple(_clean(keyword) for keyword in raw if _clean(keyword))


def _normalize_chat(raw: Any) -> ChatRef:
    if isinstance(raw, ChatRef):
        raw = raw.to_dict()
    if isinstance(raw, str):
        return ChatRef(name=raw.strip())
    entry = _as_dict(raw)
    return ChatRef(id=_clean(entry.get("id")), name=_clean(entry.get("name")))


def _normalize_sources(raw: Any) -> tuple[ChatRef, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    sources = (_normalize_chat(entry) for entry in raw)
    return tuple(source for source in sources if not source.is_empty)


def _normalize_logging(raw: dict[str, Any]) -> LoggingConfig:
    defaults = DEFAULT_CONFIG.logging
    file_cfg = _as_dict(raw.get("file"))
    redact = _as_dict(raw.get("redact"))
    patterns = redact.get("patterns") or []
    return LoggingConfig(
        enabled=parse_bool(raw.get("enabled"), defaults.enabled),
        level=(_clean(raw.get("level")) or defaults.level).upper(),
        console=parse_bool(raw.get("console"), defaults.console),
        file=LogFileConfig(
            enabled=parse_bool(file_cfg.get("enabled"), defaults.file.enabled),
            path=_clean(file_cfg.get("path")) or defaults.file.path,
            max_bytes=_coerce_int(file_cfg.get("max_bytes"), defaults.file.max_bytes),
            backup_count=_coerce_int(file_cfg.get("backup_count"), defaults.file.backup_count),
        ),
        redact_enabled=parse_bool(redact.get("enabled"), defaults.redact_enabled),
        redact_patterns=tuple(_clean(name) for name in patterns if _clean(name)),
    )


def normalize_config(raw: Any) -> AppConfig:
    """Return a normalized AppConfig for a raw config.json-shaped mapping.

    Missing fields take defaults, strings are trimmed, ``mode`` is
    lower-cased and empty keywords/sources are dropped. Keyword order and
    duplicates are kept. Normalizing an already normalized config is a no-op.
    """

    if isinstance(raw, AppConfig):
        raw = raw.to_dict()
    data = deep_merge(DEFAULT_CONFIG.to_dict(), _expand_shorthand(_as_dict(raw)))
    web = _as_dict(data.get("web"))
    whatsapp = _as_dict(data.get("whatsapp"))

    defaults = DEFAULT_CONFIG
    return AppConfig(
        web=WebConfig(
            bind=_clean(web.get("bind")) or defaults.web.bind,
            port=_coerce_port(web.get("port"), defaults.web.port),
        ),
        whatsapp=WhatsAppConfig(
            mode=(_clean(whatsapp.get("mode")) or defaults.whatsapp.mode).lower(),
            allow_own=parse_bool(whatsapp.get("allowOwn"), defaults.whatsapp.allow_own),
            debug=parse_bool(whatsapp.get("debug"), defaults.whatsapp.debug),
            keywords=_normalize_keywords(whatsapp.get("keywords")),
            target=_normalize_chat(whatsapp.get("target")),
            sources=_normalize_sources(whatsapp.get("sources")),
            puppeteer_executable_path=_clean(whatsapp.get("puppeteerExecutablePath")),
            headless=parse_bool(whatsapp.get("headless"), defaults.whatsapp.headless),
        ),
        logging=_normalize_logging(_as_dict(data.get("logging"))),
    )


def validate_config(config: AppConfig) -> list[str]:
    """Return human-readable validation errors (empty when valid)."""

    errors: list[str] = []
    if config.web.port < 1 or config.web.port > 65535:
        errors.append("web.port must be 1..65535")
    if config.whatsapp.mode not in MODES:
        errors.append('whatsapp.mode must be "copy" or "forward"')
    return errors


def config_warnings(config: AppConfig) -> list[str]:
    """Advisory messages for settings that keep the relay from doing anything."""

    warnings: list[str] = []
    whatsapp = config.whatsapp
    if whatsapp.target.is_empty:
        warnings.append("Target group is not set (target).")
    if not whatsapp.sources:
        warnings.append("No source groups selected (sources).")
    if not whatsapp.keywords:
        warnings.append("No keywords configured.")
    return warnings


def needs_restart(before: AppConfig, after: AppConfig) -> bool:
    """Browser launch options only take effect when the client restarts."""

    return (
        before.whatsapp.puppeteer_executable_path != after.whatsapp.puppeteer_executable_path
        or before.whatsapp.headless != after.whatsapp.headless
    )


def _read_disk(path: str) -> Optional[dict[str, Any]]:
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError):
        LOGGER.warning("Ignoring unreadable config file %s", path, exc_info=True)
        return None
    if not isinstance(data, dict):
        LOGGER.warning("Ignoring config file %s: top level is not an object", path)
        return None
    return data


def _write_json_atomic(path: str, data: dict[str, Any]) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=2, ensure_ascii=False)
        handle.write("\n")
    os.replace(tmp_path, path)


def load_config(path: str = CONFIG_PATH, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Resolve defaults < environment < config.json into one AppConfig.

    The file is created from the resolved values when missing. Validation is
    left to ``save_config``.
    """

    if environ is None:
        load_dotenv()
        environ = os.environ

    env = from_env(environ)
    disk = _read_disk(path)
    if disk is not None:
        disk = _expand_shorthand(disk)
    merged = deep_merge(env, disk or {})

    # An empty list or target on disk means "not filled in yet".
    disk_whatsapp = _as_dict((disk or {}).get("whatsapp"))
    env_whatsapp = env["whatsapp"]
    merged_whatsapp = _as_dict(merged.get("whatsapp"))
    for key in ("keywords", "sources"):
        disk_value = disk_whatsapp.get(key)
        if isinstance(disk_value, list) and not disk_value and env_whatsapp[key]:
            merged_whatsapp[key] = env_whatsapp[key]
    disk_target = disk_whatsapp.get("target")
    env_target = env_whatsapp["target"]
    if (
        isinstance(disk_target, dict)
        and not _clean(disk_target.get("id"))
        and not _clean(disk_target.get("name"))
        and (env_target["id"] or env_target["name"])
    ):
        merged_whatsapp["target"] = env_target
    merged["whatsapp"] = merged_whatsapp

    config = normalize_config(merged)

    if disk is None and not os.path.exists(path):
        try:
            _write_json_atomic(path, config.to_dict())
            LOGGER.info("Created config file %s", path)
        except OSError:
            LOGGER.warning("Could not create config file %s", path, exc_info=True)

    return config


def save_config(data: Any, path: str = CONFIG_PATH) -> AppConfig:
    """Normalize, validate and atomically persist a configuration.

    Raises InvalidConfig without touching the file when validation fails.
    """

    config = normalize_config(data)
    errors = validate_config(config)
    if errors:
        raise InvalidConfig(errors)
    _write_json_atomic(path, config.to_dict())
    return config
