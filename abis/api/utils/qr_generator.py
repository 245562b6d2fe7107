"""QR code generation for printed record verification.

QR codes are generated in memory and embedded directly into PDFs; nothing is
written to disk.
"""
import qrcode
from io import BytesIO
from urllib.parse import quote

from flask import current_app, has_app_context


DEFAULT_WEB_URL = 'http://localhost:5173'


def build_tracking_url(tracking_number: str) -> str:
    """
    Verification URL for a tracking number, e.g.
    https://abis.example.gov/track/ABIS-1718000000000-a1B2c3

    WEB_URL from the Flask config is used as the base; without it the local
    development frontend is assumed.
    """
    base_url = None
    if has_app_context():
        base_url = current_app.config.get('WEB_URL')
    if not base_url:
        base_url = DEFAULT_WEB_URL
        if has_app_context():
            current_app.logger.warning("QR code using default localhost URL. Set WEB_URL for production.")
    return f"{base_url.rstrip('/')}/track/{quote(str(tracking_number), safe='')}"


def generate_qr_code_bytes(qr_data: str, size: int = 300) -> bytes:
    """
    Generate QR code image as raw PNG bytes (in memory).

    Args:
        qr_data: String to encode
        size: Size of QR code in pixels
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=10,
        border=4,
    )
    qr.add_data(str(qr_data))
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    img = img.resize((size, size))

    buffered = BytesIO()
    img.save(buffered, format="PNG")
    return buffered.getvalue()
