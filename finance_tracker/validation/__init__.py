"""
Validation Package

Field checks, record shapes and the referential integrity stage.
"""

from finance_tracker.validation.sanitizer import sanitize
from finance_tracker.validation.schema import (
    CategoryCreate,
    PaymentSourceCreate,
    ReceiptDraft,
    TransactionCreate,
    TransactionUpdate,
    validate_record,
)
from finance_tracker.validation.references import ReferentialIntegrityChecker

__all__ = [
    "sanitize",
    "CategoryCreate",
    "PaymentSourceCreate",
    "ReceiptDraft",
    "TransactionCreate",
    "TransactionUpdate",
    "validate_record",
    "ReferentialIntegrityChecker",
]
