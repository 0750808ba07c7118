import io
import logging
import secrets

import qrcode

logger = logging.getLogger(__name__)

QR_PREFIX = "INVQR-"


def generate_qr_reference(invitation_number: str) -> str:
    """Opaque check-in reference printed into the QR image"""
    return f"{QR_PREFIX}{invitation_number}-{secrets.token_hex(4).upper()}"


def is_qr_reference(reference: str) -> bool:
    return reference.startswith(QR_PREFIX)


def generate_qr_code_image(qr_code: str) -> bytes:
    """Generate QR code image as PNG bytes"""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(qr_code)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    img_bytes = io.BytesIO()
    img.save(img_bytes, format='PNG')
    img_bytes.seek(0)
    logger.debug(f"Rendered QR image for {qr_code}")
    return img_bytes.getvalue()
