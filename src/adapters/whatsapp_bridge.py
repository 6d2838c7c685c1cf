"""WhatsApp bridge client adapter.

Talks to a whatsapp-web.js bridge service over HTTP (chat list, send) and a
WebSocket (qr/ready/auth_failure/disconnected/message notifications).
Implements the core ChatClientPort and EventSourcePort contracts.

    Python relay <-> WhatsAppBridgeClient <-> bridge (Node.js) <-> WhatsApp Web
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

import aiohttp

from adapters.whatsapp_mapper import build_chats, build_event
from core.models import ChatInfo, ClientEvent

LOGGER = logging.getLogger(__name__)

DEFAULT_BROWSER_ARGS = ("--no-sandbox", "--disable-setuid-sandbox")


class BridgeError(RuntimeError):
    """Raised when the bridge cannot be reached or rejects a request.

    ``status`` carries the HTTP status code when the bridge answered.
    """

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class LaunchOptions:
    """Browser options forwarded to the bridge when the client initializes."""

    client_id: str = "wa-relay"
    headless: bool = False
    executable_path: str = ""
    args: tuple[str, ...] = field(default=DEFAULT_BROWSER_ARGS)

    def to_payload(self) -> dict[str, Any]:
        puppeteer: dict[str, Any] = {"headless": self.headless, "args": list(self.args)}
        if self.executable_path:
            puppeteer["executablePath"] = self.executable_path
        return {"clientId": self.client_id, "puppeteer": puppeteer}


class WhatsAppBridgeClient:
    """aiohttp client for the bridge's HTTP API and event WebSocket."""

    def __init__(
        self,
        http_url: str = "http://localhost:3100",
        ws_url: str = "ws://localhost:3101",
        launch_options: Optional[LaunchOptions] = None,
    ) -> None:
        self.http_url = http_url.rstrip("/")
        self.ws_url = ws_url
        self._launch_options = launch_options or LaunchOptions()
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    async def __aenter__(self) -> "WhatsAppBridgeClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        """Open the HTTP session, initialize the WhatsApp client, open the socket."""

        self._session = aiohttp.ClientSession()
        try:
            await self._init_client()
            self._ws = await self._session.ws_connect(self.ws_url, heartbeat=30)
        except (aiohttp.ClientError, BridgeError) as exc:
            await self._session.close()
            self._session = None
            raise BridgeError(
                f"Cannot connect to WhatsApp bridge at {self.http_url} / {self.ws_url}"
            ) from exc
        LOGGER.info("Connected to WhatsApp bridge %s", self.http_url)

    async def _init_client(self) -> None:
        try:
            await self._request("POST", "/client/init", json=self._launch_options.to_payload())
        except BridgeError as exc:
            if exc.status != 404:
                raise
            # Bridges without the init endpoint start their own client.
            LOGGER.warning(
                "Bridge at %s does not accept launch options; browser settings are ignored",
                self.http_url,
            )

    async def disconnect(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._session is not None:
            await self._session.close()
            self._session = None
        LOGGER.info("Disconnected from WhatsApp bridge")

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._session is None:
            raise BridgeError("Not connected. Call connect() first.")
        url = f"{self.http_url}{path}"
        try:
            async with self._session.request(method, url, **kwargs) as resp:
                if resp.status >= 400:
                    detail = await resp.text()
                    raise BridgeError(
                        f"{method} {path} failed: {resp.status} {detail[:200]}",
                        status=resp.status,
                    )
                if resp.content_type == "application/json":
                    return await resp.json()
                return None
        except aiohttp.ClientError as exc:
            raise BridgeError(f"{method} {path} failed: {exc}") from exc

    async def get_status(self) -> dict[str, Any]:
        return await self._request("GET", "/status") or {}

    async def get_chats(self) -> list[ChatInfo]:
        return build_chats(await self._request("GET", "/chats"))

    async def send_message(self, chat_id: str, text: str) -> None:
        await self._request("POST", "/send", json={"chatId": chat_id, "message": text})

    async def events(self) -> AsyncIterator[ClientEvent]:
        """Yield client notifications until the socket closes."""

        if self._ws is None:
            raise BridgeError("Not connected. Call connect() first.")

        async for frame in self._ws:
            if frame.type == aiohttp.WSMsgType.TEXT:
                try:
                    data = json.loads(frame.data)
                except ValueError:
                    LOGGER.warning("Skipping malformed bridge frame: %s", frame.data[:200])
                    continue
                if not isinstance(data, dict):
                    continue
                event = build_event(data)
                if event is not None:
                    yield event
            elif frame.type == aiohttp.WSMsgType.ERROR:
                LOGGER.warning("Bridge WebSocket error: %s", self._ws.exception())
                break

        LOGGER.warning("Bridge WebSocket closed")
