"""FastAPI dashboard: status, QR pairing, config editing and group picker."""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

import settings
from core.chat_keys import summarize_chats
from core.config import AppConfig
from core.ports import ChatClientPort
from core.runtime import RuntimeContext

LOGGER = logging.getLogger(__name__)

STATIC_DIR = os.path.join(os.path.dirname(__file__), "static")

SAVED_MESSAGE = "Saved. Changes applied."
RESTART_MESSAGE = "Saved. Restart the relay to apply browser/headless changes."


class StatusResponse(BaseModel):
    ready: bool
    lastError: Optional[str] = None
    warnings: list[str]
    target: str
    sources: str
    configPath: str


class QrResponse(BaseModel):
    ready: bool
    lastError: Optional[str] = None
    hasQr: bool
    dataUrl: Optional[str] = None
    at: Optional[int] = None


class SaveResponse(BaseModel):
    ok: bool
    needsRestart: bool
    warnings: list[str]
    message: str


class Group(BaseModel):
    id: str
    name: str


class GroupsResponse(BaseModel):
    groups: list[Group]


def _error(status_code: int, error: str, details: Any = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "details": details})


def build_app(
    runtime: RuntimeContext,
    client: ChatClientPort,
    config_path: str = settings.CONFIG_PATH,
    save: Callable[[Any, str], AppConfig] = settings.save_config,
) -> FastAPI:
    """Create the dashboard app bound to one runtime context and client."""

    app = FastAPI(title="wa-relay dashboard", version="1.0.0")

    @app.get("/api/status", response_model=StatusResponse)
    async def status() -> StatusResponse:
        config = runtime.config
        return StatusResponse(
            ready=runtime.ready,
            lastError=runtime.last_error,
            warnings=settings.config_warnings(config),
            target=config.whatsapp.target.label,
            sources=summarize_chats(config.whatsapp.sources),
            configPath=config_path,
        )

    @app.get("/api/qr", response_model=QrResponse)
    async def qr() -> QrResponse:
        snapshot = runtime.qr
        return QrResponse(
            ready=runtime.ready,
            lastError=runtime.last_error,
            hasQr=bool(snapshot and snapshot.data_url),
            dataUrl=snapshot.data_url if snapshot else None,
            at=snapshot.at if snapshot else None,
        )

    @app.get("/api/config")
    async def get_config() -> dict[str, Any]:
        return runtime.config.to_dict()

    @app.post("/api/config", response_model=SaveResponse)
    async def post_config(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            return _error(400, "Invalid config", ["request body must be JSON"])
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            return _error(400, "Invalid config", ["request body must be a JSON object"])

        incoming = settings.normalize_config(payload)
        errors = settings.validate_config(incoming)
        if errors:
            return _error(400, "Invalid config", errors)

        try:
            saved = save(incoming, config_path)
        except settings.InvalidConfig as exc:
            return _error(400, "Invalid config", exc.errors)
        except OSError as exc:
            LOGGER.exception("Failed to save config to %s", config_path)
            return _error(500, f"Failed to save: {exc}")

        before = runtime.replace(saved)
        restart = settings.needs_restart(before, saved)
        return SaveResponse(
            ok=True,
            needsRestart=restart,
            warnings=settings.config_warnings(saved),
            message=RESTART_MESSAGE if restart else SAVED_MESSAGE,
        )

    @app.get("/api/groups", response_model=GroupsResponse)
    async def groups():
        if not runtime.ready:
            return _error(409, "WhatsApp client not ready yet")
        try:
            chats = await client.get_chats()
        except Exception as exc:
            LOGGER.exception("Failed to fetch groups")
            return _error(500, f"Failed to fetch groups: {exc}")
        found = [Group(id=chat.id, name=chat.name) for chat in chats if chat.is_group and chat.id and chat.name]
        found.sort(key=lambda group: group.name.casefold())
        return GroupsResponse(groups=found)

    @app.get("/", include_in_schema=False)
    async def index() -> FileResponse:
        return FileResponse(os.path.join(STATIC_DIR, "index.html"))

    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")
    return app


def build_server(app: FastAPI, bind: str, port: int) -> uvicorn.Server:
    """Create a uvicorn server that shares the caller's event loop."""

    config = uvicorn.Config(
        app=app,
        host=bind,
        port=port,
        loop="asyncio",
        lifespan="on",
        log_level="info",
    )
    return uvicorn.Server(config)
