"""QR code rendering for table and queue tokens."""

import base64
import io

import qrcode

from tablequeue.core.config import settings


def qr_data_url(data: str) -> str:
    """Render ``data`` as a PNG QR code and return it as a data URL."""
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{encoded}"


def table_url(token: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/menu/{token}"


def queue_url(token: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/queue/{token}"
