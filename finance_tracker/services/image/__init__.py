"""Image handling package."""

from finance_tracker.services.image.receipt_image import (
    ImageRejectedError,
    ReceiptImage,
    decode_receipt_image,
)

__all__ = ["ImageRejectedError", "ReceiptImage", "decode_receipt_image"]
