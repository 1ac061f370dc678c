"""
QR rendering for encoded ticket payloads.

Rendering is a pure function of the encoded string: error correction H so
glare or a cracked phone screen still scans, a fixed quiet margin, black on
white. The inline (data URL) and attachment (PNG bytes) forms are the same
image.
"""

import base64
import io

import qrcode
from qrcode.constants import ERROR_CORRECT_H

from ticketgate.core.config import get_settings

DARK = "#000000"
LIGHT = "#FFFFFF"


def _build_image(encoded: str):
    if not encoded:
        raise ValueError("cannot render an empty ticket code")

    settings = get_settings()
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_H,
        box_size=settings.QR_BOX_SIZE,
        border=settings.QR_BORDER,
    )
    qr.add_data(encoded)
    qr.make(fit=True)
    return qr.make_image(fill_color=DARK, back_color=LIGHT)


def render_png(encoded: str) -> bytes:
    """PNG bytes, for email attachments and the image endpoint."""
    buffer = io.BytesIO()
    _build_image(encoded).save(buffer, format="PNG")
    return buffer.getvalue()


def render_data_url(encoded: str) -> str:
    """data: URL for embedding straight into HTML."""
    png = render_png(encoded)
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")
