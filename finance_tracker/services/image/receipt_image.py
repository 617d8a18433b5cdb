"""
Receipt Image Decoding

The client uploads a receipt photo as base64 (optionally as a data URL).
Before anything is sent to the vision model we check that:
1. The payload is valid base64
2. It is within the configured size limit
3. Pillow recognizes it as an image in a supported format

The image is used for this one request only - it is never stored.
"""

import base64
import binascii
from io import BytesIO
from typing import Any

from PIL import Image
from pydantic import BaseModel


class ImageRejectedError(Exception):
    """Upload is not a usable receipt image. The message is user-facing."""
    pass


class ReceiptImage(BaseModel):
    """A decoded, sniffed receipt image."""

    data: bytes
    mime_type: str
    format: str
    width: int
    height: int

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def _strip_data_url(payload: str) -> str:
    if not payload.startswith("data:"):
        return payload

    header, sep, body = payload.partition(",")
    if not sep or not header.endswith(";base64"):
        raise ImageRejectedError("Image must be base64 encoded")
    return body


def decode_receipt_image(
    raw: Any,
    max_bytes: int,
    allowed_formats: list[str],
) -> ReceiptImage:
    """
    Decode and sniff an uploaded receipt image.

    Args:
        raw: base64 string or data: URL from the request body
        max_bytes: Upper bound on the decoded size
        allowed_formats: Lower-case Pillow format names (jpeg, png, ...)

    Raises:
        ImageRejectedError: With a message safe to show the user
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ImageRejectedError("Image is required")

    payload = "".join(_strip_data_url(raw.strip()).split())
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ImageRejectedError("Image is not valid base64")

    if not data:
        raise ImageRejectedError("Image is required")
    if len(data) > max_bytes:
        raise ImageRejectedError(
            f"Image exceeds the maximum size of {max_bytes // (1024 * 1024)} MB"
        )

    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
            image_format = (img.format or "").upper()
            width, height = img.size
    except Exception:
        # Pillow raises a mix of exception types for corrupt data
        raise ImageRejectedError("File is not a recognizable image")

    if image_format.lower() not in allowed_formats:
        raise ImageRejectedError(
            f"Unsupported image format. Supported: {', '.join(allowed_formats)}"
        )

    return ReceiptImage(
        data=data,
        mime_type=Image.MIME.get(image_format, f"image/{image_format.lower()}"),
        format=image_format.lower(),
        width=width,
        height=height,
    )
