"""Application entry point for the wa-relay bridge."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, Iterable, Mapping, Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.qr_rendering import print_qr
from adapters.whatsapp_bridge import BridgeError, WhatsAppBridgeClient
from client import build_client
from core.config import AppConfig, LoggingConfig
from core.router import MessageRouter
from core.runtime import RuntimeContext
from dashboard.api import build_app, build_server
from pipeline import EventDispatcher

NAME = "WA RELAY"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


# Loggers of this project. The debug switch lowers these only, so the web
# server and HTTP client keep the configured level.
RELAY_LOGGERS = ("app", "client", "settings", "pipeline", "core", "adapters", "dashboard")


class _RedactingFormatter(logging.Formatter):
    """Masks secret values in every rendered record."""

    MASK = "***"

    def __init__(self, secrets: Iterable[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first, so a secret that contains another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        for secret in self._secrets:
            text = text.replace(secret, self.MASK)
        return text


def _secret_values(config: LoggingConfig, environ: Optional[Mapping[str, str]] = None) -> list[str]:
    """Values of the environment variables named in ``redact.patterns``."""

    if not config.redact_enabled:
        return []
    environ = os.environ if environ is None else environ
    return [environ[name] for name in config.redact_patterns if environ.get(name)]


def _build_handlers(config: LoggingConfig, level: int) -> list[logging.Handler]:
    formatter = _RedactingFormatter(
        _secret_values(config),
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = []
    if config.console:
        handlers.append(logging.StreamHandler())
    if config.file.enabled:
        path = config.file.path
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                path,
                maxBytes=config.file.max_bytes,
                backupCount=config.file.backup_count,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def _apply_debug_levels(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.NOTSET
    for name in RELAY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def _configure_logging(config: AppConfig) -> None:
    """Set up console/file logging; ``whatsapp.debug`` turns on relay debug output."""

    log_config = config.logging
    if not log_config.enabled:
        return

    load_dotenv()
    level = getattr(logging, log_config.level, logging.INFO)
    debug = config.whatsapp.debug
    handlers = _build_handlers(log_config, logging.DEBUG if debug else level)
    if handlers:
        logging.basicConfig(level=level, handlers=handlers)
    _apply_debug_levels(debug)


def _install_loop_error_handler(runtime: RuntimeContext) -> None:
    """Record stray task errors as the last error instead of stopping."""

    logger = logging.getLogger(__name__)

    def handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        message = repr(exc) if exc else str(context.get("message", "unknown error"))
        runtime.record_error(message)
        logger.error("[UNHANDLED] %s", message, exc_info=exc)

    asyncio.get_running_loop().set_exception_handler(handler)


async def _serve(config: AppConfig) -> None:
    logger = logging.getLogger(__name__)

    runtime = RuntimeContext(config)
    _install_loop_error_handler(runtime)

    client = build_client(config)
    router = MessageRouter(runtime, client)
    dispatcher = EventDispatcher(runtime, router)

    server = build_server(build_app(runtime, client), config.web.bind, config.web.port)
    server_task = asyncio.create_task(server.serve())
    logger.info("Web UI: http://%s:%s", config.web.bind, config.web.port)

    try:
        try:
            await client.connect()
        except BridgeError as exc:
            logger.exception("WhatsApp bridge unavailable")
            runtime.record_error(str(exc))
        else:
            logger.info("Client connected. Listening for incoming messages...")
            await dispatcher.run(client)
        # No reconnect: the dashboard keeps serving status until shutdown.
        await server_task
    finally:
        await client.disconnect()


def _run() -> None:
    _print_banner()
    config = settings.load_config()
    _configure_logging(config)
    logger = logging.getLogger(__name__)

    logger.info("Starting wa-relay")
    for warning in settings.config_warnings(config):
        logger.warning("%s", warning)

    asyncio.run(_serve(config))


def _show_config() -> None:
    config = settings.load_config()
    print(json.dumps(config.to_dict(), indent=2, ensure_ascii=False))
    print(f"\nconfig file: {settings.CONFIG_PATH}")
    for error in settings.validate_config(config):
        print(f"error: {error}")
    for warning in settings.config_warnings(config):
        print(f"warning: {warning}")


async def _wait_until_ready(client: WhatsAppBridgeClient) -> bool:
    status = await client.get_status()
    if status.get("whatsapp", {}).get("ready"):
        return True
    async for event in client.events():
        if event.kind == "qr" and event.payload.get("qr"):
            print("Scan this QR code with WhatsApp:")
            print_qr(str(event.payload["qr"]))
        elif event.kind == "ready":
            return True
        elif event.kind in {"auth_failure", "disconnected"}:
            print(f"WhatsApp {event.kind}: {event.payload}")
            return False
    return False


async def _list_groups(client: WhatsAppBridgeClient) -> None:
    async with client:
        if not await _wait_until_ready(client):
            return
        groups = [chat for chat in await client.get_chats() if chat.is_group and chat.id]
        if not groups:
            print("No groups found.")
            return
        groups.sort(key=lambda chat: chat.name.casefold())
        for index, chat in enumerate(groups, start=1):
            print(f"{index}. {chat.name} | {chat.id}")


def _groups() -> None:
    _print_banner()
    config = settings.load_config()
    asyncio.run(_list_groups(build_client(config)))


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="wa-relay")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the relay and the web dashboard")
    subparsers.add_parser("config", help="Show the resolved configuration and warnings")
    subparsers.add_parser("groups", help="List WhatsApp groups with their ids")

    args = parser.parse_args(argv)
    if args.command == "config":
        _show_config()
        return
    if args.command == "groups":
        _groups()
        return
    _run()


if __name__ == "__main__":
    main()
