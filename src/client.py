"""WhatsApp bridge client factory for wa-relay.

The bridge endpoints come from the environment; browser launch options come
from the relay configuration and are applied when the client connects.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

from adapters.whatsapp_bridge import LaunchOptions, WhatsAppBridgeClient
from core.config import AppConfig


def build_client(config: AppConfig) -> WhatsAppBridgeClient:
    """Create a bridge client from environment variables and config.

    WA_BRIDGE_URL/WA_BRIDGE_WS_URL point at the bridge service; WA_CLIENT_ID
    selects the stored WhatsApp session (defaults to "wa-forwarder").
    """

    load_dotenv()

    http_url = os.getenv("WA_BRIDGE_URL", "http://localhost:3100")
    ws_url = os.getenv("WA_BRIDGE_WS_URL", "ws://localhost:3101")
    client_id = os.getenv("WA_CLIENT_ID", "wa-forwarder")

    logging.getLogger(__name__).info("Initializing WhatsApp bridge client (%s)", http_url)

    launch_options = LaunchOptions(
        client_id=client_id,
        headless=config.whatsapp.headless,
        executable_path=config.whatsapp.puppeteer_executable_path,
    )
    return WhatsAppBridgeClient(http_url=http_url, ws_url=ws_url, launch_options=launch_options)
