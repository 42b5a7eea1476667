"""
QR token codec for scan-based check-in/check-out.

A token only says *which* booking was scanned. It is not signed and grants
nothing; the attendance endpoints re-check ownership and lifecycle guards
after decoding it.

Token format: compact JSON
    {"type": "booking", "booking_id": 42, "issued_at": "2030-01-01T08:00:00+00:00"}
"""

import base64
import io
import json
from datetime import datetime

import qrcode

from attendease.core.config import get_settings
from attendease.core.exceptions import MalformedToken, WrongTokenType
from attendease.core.metrics import record_qr_operation

settings = get_settings()

TOKEN_TYPE = "booking"


def encode_token(booking_id: int, issued_at: datetime) -> str:
    return json.dumps(
        {"type": TOKEN_TYPE, "booking_id": booking_id, "issued_at": issued_at.isoformat()},
        separators=(",", ":"),
    )


def decode_token(token: str) -> int:
    """Return the booking id carried by a scanned token."""
    try:
        payload = json.loads(token)
    except (TypeError, ValueError) as e:
        record_qr_operation("resolve", "malformed")
        raise MalformedToken("Invalid QR code") from e

    if not isinstance(payload, dict) or "type" not in payload:
        record_qr_operation("resolve", "malformed")
        raise MalformedToken("Invalid QR code")

    if payload["type"] != TOKEN_TYPE:
        record_qr_operation("resolve", "wrong_type")
        raise WrongTokenType("QR code is not for a booking")

    booking_id = payload.get("booking_id")
    # bool is an int subclass; reject it explicitly
    if not isinstance(booking_id, int) or isinstance(booking_id, bool) or booking_id < 1:
        record_qr_operation("resolve", "malformed")
        raise MalformedToken("Invalid QR code")

    record_qr_operation("resolve", "ok")
    return booking_id


def render_qr_data_url(token: str) -> str:
    """Render the token as a PNG QR code and return it as a data URL."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=settings.QR_BOX_SIZE,
        border=settings.QR_BORDER,
    )
    qr.add_data(token)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    encoded = base64.b64encode(buf.getvalue()).decode()
    return f"data:image/png;base64,{encoded}"
