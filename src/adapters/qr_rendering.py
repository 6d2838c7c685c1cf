"""QR code rendering for pairing codes (terminal and dashboard)."""

from __future__ import annotations

import base64
import io
import logging
from typing import Optional, TextIO

import qrcode

LOGGER = logging.getLogger(__name__)


def _build_qr(data: str, box_size: int = 6) -> qrcode.QRCode:
    qr = qrcode.QRCode(border=1, box_size=box_size)
    qr.add_data(data)
    qr.make(fit=True)
    return qr


def print_qr(data: str, out: Optional[TextIO] = None) -> None:
    """Print the pairing code as ASCII art for terminal scanning."""

    _build_qr(data).print_ascii(out=out, invert=True)


def qr_data_url(data: str) -> Optional[str]:
    """Render the pairing code as a PNG data URL, or None if rendering fails."""

    try:
        image = _build_qr(data).make_image()
        buffer = io.BytesIO()
        image.save(buffer)
    except (OSError, ValueError):
        LOGGER.exception("Failed to render QR code image")
        return None
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"
