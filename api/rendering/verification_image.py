"""Verification code images.

Each certificate carries a QR code that encodes its public verification URL.
Images are plain PNG bytes so they can be embedded in any exported format.
"""

import asyncio
import io
import logging

import qrcode
from PIL import Image, ImageDraw
from qrcode.constants import ERROR_CORRECT_M

from schemas import VerificationCodeStyle

logger = logging.getLogger(__name__)

QR_BORDER_MODULES = 1
PLACEHOLDER_LABEL = "QR Code"


def build_verification_url(certificate_id: str, site_url: str) -> str:
    """Public URL a scanner lands on for this certificate."""
    return f"{site_url.rstrip('/')}/verify/{certificate_id}"


def render_qr_png(
    data: str,
    *,
    size: int,
    color: str = "#000000",
    background_color: str = "#ffffff",
) -> bytes:
    """Encode ``data`` as a square QR code PNG of ``size`` pixels."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=10,
        border=QR_BORDER_MODULES,
    )
    qr.add_data(data)
    qr.make(fit=True)

    image = qr.make_image(fill_color=color, back_color=background_color).get_image()
    image = image.convert("RGB").resize((size, size), Image.Resampling.NEAREST)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def render_placeholder_png(size: int) -> bytes:
    """Neutral grey tile used when a real code cannot be produced."""
    image = Image.new("RGB", (size, size), "#ffffff")
    draw = ImageDraw.Draw(image)

    inset = 16 if size > 48 else 0
    draw.rectangle((inset, inset, size - inset - 1, size - inset - 1), fill="#e5e7eb")

    left, top, right, bottom = draw.textbbox((0, 0), PLACEHOLDER_LABEL)
    text_w, text_h = right - left, bottom - top
    if text_w < size and text_h < size:
        draw.text(
            ((size - text_w) / 2, (size - text_h) / 2),
            PLACEHOLDER_LABEL,
            fill="#9ca3af",
        )

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


async def regenerate_verification_image(
    certificate_id: str,
    style: VerificationCodeStyle,
    *,
    site_url: str,
) -> bytes:
    """Render the verification QR code for ``certificate_id``.

    Deterministic for a given (id, size, colors). Never raises: on failure
    the neutral placeholder is returned so one bad image cannot fail a bind.
    """
    url = build_verification_url(certificate_id, site_url)
    try:
        return await asyncio.to_thread(
            render_qr_png,
            url,
            size=style.size,
            color=style.color,
            background_color=style.background_color,
        )
    except Exception:
        logger.warning(
            "verification_image.failed",
            extra={"certificate_id": certificate_id, "size": style.size},
            exc_info=True,
        )
        return render_placeholder_png(style.size)
