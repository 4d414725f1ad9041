"""Render pairing challenges as scannable images."""

import base64
import io

import qrcode


def render_qr_data_url(code: str) -> str:
    """Encode a QR challenge as a PNG data URL ("data:image/png;base64,...")."""
    image = qrcode.make(code)
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    encoded = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"
