from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import pytest
from aiohttp import test_utils, web

from adapters.whatsapp_bridge import BridgeError, LaunchOptions, WhatsAppBridgeClient
from client import build_client
from core.models import ChatInfo
from settings import normalize_config

MESSAGE_FRAME = {
    "type": "message",
    "message": {
        "id": {"_serialized": "m1"},
        "from": "g1@g.us",
        "fromMe": False,
        "body": "fire on floor 2",
        "chat": {"id": {"_serialized": "g1@g.us"}, "name": "Alerts", "isGroup": True},
    },
}


class FakeBridge:
    """Minimal bridge service recording what the client sends."""

    def __init__(self, *, init_status: int = 200, chats_status: int = 200, send_json: bool = True) -> None:
        self.init_status = init_status
        self.chats_status = chats_status
        self.send_json = send_json
        self.init_payloads: list[dict[str, Any]] = []
        self.sent: list[dict[str, Any]] = []
        self.frames: list[str] = [
            json.dumps({"type": "qr", "qr": "2@pairing-code"}),
            "not json",
            "[1, 2]",
            json.dumps({"type": "ready"}),
            json.dumps(MESSAGE_FRAME),
        ]

    def app(self) -> web.Application:
        app = web.Application()
        if self.init_status != 404:
            app.router.add_post("/client/init", self.client_init)
        app.router.add_get("/chats", self.chats)
        app.router.add_get("/status", self.status)
        app.router.add_post("/send", self.send)
        app.router.add_get("/ws", self.websocket)
        return app

    async def client_init(self, request: web.Request) -> web.Response:
        self.init_payloads.append(await request.json())
        if self.init_status >= 400:
            return web.Response(status=self.init_status, text="init failed")
        return web.json_response({"ok": True})

    async def chats(self, request: web.Request) -> web.Response:
        if self.chats_status >= 400:
            return web.Response(status=self.chats_status, text="chats failed")
        return web.json_response(
            {
                "chats": [
                    {"id": {"_serialized": "g1@g.us"}, "name": "Alerts", "isGroup": True},
                    {"id": "123@c.us", "name": "Alice"},
                ]
            }
        )

    async def status(self, request: web.Request) -> web.Response:
        return web.Response(text="running")

    async def send(self, request: web.Request) -> web.Response:
        self.sent.append(await request.json())
        if self.send_json:
            return web.json_response({"ok": True})
        return web.Response(text="sent")

    async def websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        for frame in self.frames:
            await ws.send_str(frame)
        await ws.close()
        return ws


async def _start(bridge: FakeBridge, launch_options: Optional[LaunchOptions] = None):
    server = test_utils.TestServer(bridge.app())
    await server.start_server()
    client = WhatsAppBridgeClient(
        http_url=str(server.make_url("/")),
        ws_url=str(server.make_url("/ws")),
        launch_options=launch_options,
    )
    return server, client


def test_launch_options_payload() -> None:
    options = LaunchOptions(client_id="wa-forwarder", headless=True, executable_path="/usr/bin/chromium")

    assert options.to_payload() == {
        "clientId": "wa-forwarder",
        "puppeteer": {
            "headless": True,
            "args": ["--no-sandbox", "--disable-setuid-sandbox"],
            "executablePath": "/usr/bin/chromium",
        },
    }
    assert "executablePath" not in LaunchOptions().to_payload()["puppeteer"]


def test_calls_before_connect_raise() -> None:
    client = WhatsAppBridgeClient()

    with pytest.raises(BridgeError):
        asyncio.run(client.get_chats())
    with pytest.raises(BridgeError):
        asyncio.run(client.send_message("g1", "hi"))
    assert not client.connected


def test_build_client_uses_env_and_config(monkeypatch) -> None:
    monkeypatch.setenv("WA_BRIDGE_URL", "http://bridge:9000/")
    monkeypatch.setenv("WA_BRIDGE_WS_URL", "ws://bridge:9001")
    config = normalize_config({"whatsapp": {"headless": True}})

    client = build_client(config)

    assert client.http_url == "http://bridge:9000"
    assert client.ws_url == "ws://bridge:9001"


def test_connect_sends_launch_options_and_streams_events() -> None:
    bridge = FakeBridge()
    options = LaunchOptions(client_id="wa-forwarder", headless=True)

    async def scenario() -> list:
        server, client = await _start(bridge, options)
        try:
            await client.connect()
            assert client.connected
            return [event async for event in client.events()]
        finally:
            await client.disconnect()
            await server.close()

    events = asyncio.run(scenario())

    assert bridge.init_payloads == [options.to_payload()]
    assert [event.kind for event in events] == ["qr", "ready", "message"]
    assert events[0].payload["qr"] == "2@pairing-code"
    message = events[2].message
    assert message is not None
    assert message.message_id == "m1"
    assert message.chat == ChatInfo(id="g1@g.us", name="Alerts", is_group=True)
    assert message.body == "fire on floor 2"


def test_chats_and_send_request_shapes() -> None:
    bridge = FakeBridge(send_json=False)

    async def scenario() -> tuple:
        server, client = await _start(bridge)
        try:
            await client.connect()
            chats = await client.get_chats()
            await client.send_message("g2@g.us", "[Alerts] fire")
            status = await client.get_status()
            return chats, status
        finally:
            await client.disconnect()
            await server.close()

    chats, status = asyncio.run(scenario())

    assert chats == [
        ChatInfo(id="g1@g.us", name="Alerts", is_group=True),
        ChatInfo(id="123@c.us", name="Alice", is_group=False),
    ]
    assert bridge.sent == [{"chatId": "g2@g.us", "message": "[Alerts] fire"}]
    assert status == {}


def test_failed_init_aborts_connect() -> None:
    bridge = FakeBridge(init_status=500)

    async def scenario() -> None:
        server, client = await _start(bridge)
        try:
            with pytest.raises(BridgeError) as excinfo:
                await client.connect()
            assert isinstance(excinfo.value.__cause__, BridgeError)
            assert excinfo.value.__cause__.status == 500
            assert not client.connected
        finally:
            await client.disconnect()
            await server.close()

    asyncio.run(scenario())


def test_bridge_without_init_endpoint_still_connects() -> None:
    bridge = FakeBridge(init_status=404)

    async def scenario() -> list:
        server, client = await _start(bridge)
        try:
            await client.connect()
            return [event.kind async for event in client.events()]
        finally:
            await client.disconnect()
            await server.close()

    assert asyncio.run(scenario()) == ["qr", "ready", "message"]
    assert bridge.init_payloads == []


def test_http_errors_carry_status() -> None:
    bridge = FakeBridge(chats_status=500)

    async def scenario() -> None:
        server, client = await _start(bridge)
        try:
            await client.connect()
            with pytest.raises(BridgeError) as excinfo:
                await client.get_chats()
            assert excinfo.value.status == 500
        finally:
            await client.disconnect()
            await server.close()

    asyncio.run(scenario())
