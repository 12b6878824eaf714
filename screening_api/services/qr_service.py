"""
QR code rendering for outreach locations
"""
import io
import re

import qrcode
from qrcode.constants import ERROR_CORRECT_M

DARK_COLOR = "#1e293b"
LIGHT_COLOR = "#ffffff"


def location_form_url(base_url: str, location_id: str) -> str:
    """Public form link encoded in a location's QR code"""
    return f"{base_url.rstrip('/')}/form/{location_id}"


def generate_qr_png(data: str, box_size: int = 10, border: int = 2) -> bytes:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(fill_color=DARK_COLOR, back_color=LIGHT_COLOR)

    buffer = io.BytesIO()
    image.save(buffer)
    return buffer.getvalue()


def qr_download_name(name: str = "") -> str:
    """Attachment filename; anything outside [A-Za-z0-9_-] becomes a dash"""
    slug = re.sub(r"[^A-Za-z0-9_-]+", "-", name).strip("-")
    return f"{slug}-qr-code.png" if slug else "qr-code.png"
