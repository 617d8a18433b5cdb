"""
Field Validators

One check per transaction field. Each check takes the raw (untrusted)
value and either returns the cleaned value or raises PydanticCustomError
with a message that is safe to show to the user.

The checks are plain functions so the record shapes in schema.py can
compose them with Annotated[..., BeforeValidator(check)], and so they
can be called directly where only one field matters.

IMPORTANT: The UUID checks are syntax only. Whether the referenced
row exists (and belongs to the caller) is a separate, later stage.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError
from pydantic_core import PydanticCustomError

from finance_tracker.models.transaction import TransactionType
from finance_tracker.validation.sanitizer import sanitize


MAX_AMOUNT = Decimal("1000000000")
MIN_DATE = date(1900, 1, 1)
NOTES_MAX_LENGTH = 1000
CATALOG_NAME_MAX_LENGTH = 100

# ASCII digits only - \d would also accept other scripts' digits
_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_UUID_PATTERN = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)
_COLOR_PATTERN = re.compile(r"#[0-9a-fA-F]{6}")

_HTTP_URL = TypeAdapter(AnyHttpUrl)


# =============================================================================
# AMOUNT
# =============================================================================

def _to_decimal(value: Any) -> Decimal:
    # bool is an int subclass; True is not an amount
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise PydanticCustomError("amount_type", "Amount must be a number")

    amount = Decimal(str(value))
    if not amount.is_finite():
        raise PydanticCustomError("amount_type", "Amount must be a finite number")
    return amount


def check_amount(value: Any) -> Decimal:
    """Transaction amount: 0 < amount <= 1,000,000,000."""
    amount = _to_decimal(value)

    if amount == 0:
        raise PydanticCustomError("amount_zero", "Amount cannot be zero")
    if amount < 0:
        raise PydanticCustomError("amount_not_positive", "Amount must be greater than 0")
    if amount > MAX_AMOUNT:
        raise PydanticCustomError(
            "amount_too_large", "Amount exceeds maximum limit (1 billion)"
        )
    return amount


def check_draft_amount(value: Any) -> Decimal:
    """
    Receipt draft amount: 0 <= amount <= 1,000,000,000.

    Zero is allowed here - it marks a failed extraction the user must correct.
    """
    amount = _to_decimal(value)

    if amount < 0:
        raise PydanticCustomError("amount_negative", "Amount cannot be negative")
    if amount > MAX_AMOUNT:
        raise PydanticCustomError("amount_too_large", "Amount exceeds maximum limit")
    return amount


# =============================================================================
# DATE
# =============================================================================

def max_transaction_date(today: Optional[date] = None) -> date:
    """Latest accepted transaction date: one year from today."""
    today = today or date.today()
    try:
        return today.replace(year=today.year + 1)
    except ValueError:
        # Feb 29 -> Feb 28 of a non-leap year
        return today.replace(year=today.year + 1, day=28)


def parse_date(value: Any) -> date:
    """Literal YYYY-MM-DD to date. Format and calendar validity only."""
    if not isinstance(value, str) or not _DATE_PATTERN.fullmatch(value):
        raise PydanticCustomError("date_format", "Date must be in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise PydanticCustomError("date_invalid", "Date must be a valid calendar date")


def check_date(value: Any) -> date:
    """Transaction date: literal YYYY-MM-DD within [1900-01-01, today + 1 year]."""
    parsed = parse_date(value)

    if parsed < MIN_DATE or parsed > max_transaction_date():
        raise PydanticCustomError(
            "date_range",
            "Date must be between 1900-01-01 and 1 year from today",
        )
    return parsed


def check_draft_date(value: Any) -> date:
    """Receipt draft date: format only, the printed date is never trusted anyway."""
    return parse_date(value)


# =============================================================================
# IDENTIFIERS
# =============================================================================

def is_uuid(value: Any) -> bool:
    """True if value is a string in 8-4-4-4-12 hex form."""
    return isinstance(value, str) and _UUID_PATTERN.fullmatch(value) is not None


def uuid_check(label: str) -> Callable[[Any], str]:
    """Build a UUID syntax check whose error message names the field."""

    def check(value: Any) -> str:
        if not is_uuid(value):
            raise PydanticCustomError("uuid_invalid", f"{label} must be a valid UUID")
        # Stored ids are lowercase uuid4 strings
        return value.lower()

    return check


check_category_id = uuid_check("Category")
check_payment_source_id = uuid_check("Payment source")
check_transaction_id = uuid_check("Transaction ID")
check_user_id = uuid_check("User ID")


# =============================================================================
# TYPE / NOTES / IMAGE URL
# =============================================================================

def check_transaction_type(value: Any) -> TransactionType:
    """Exactly "income" or "expense" - no case folding."""
    if not isinstance(value, str) or value not in ("income", "expense"):
        raise PydanticCustomError(
            "type_invalid", 'Type must be either "income" or "expense"'
        )
    return TransactionType(value)


def check_notes(value: Any) -> Optional[str]:
    """
    Optional notes.

    The length bound is enforced on the SANITIZED text - that is
    what gets stored.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise PydanticCustomError("notes_type", "Notes must be text")

    cleaned = sanitize(value)
    if cleaned is not None and len(cleaned) > NOTES_MAX_LENGTH:
        raise PydanticCustomError(
            "notes_too_long", f"Notes cannot exceed {NOTES_MAX_LENGTH} characters"
        )
    return cleaned


def check_image_url(value: Any) -> Optional[str]:
    """Optional http(s) URL, stored as given."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise PydanticCustomError("image_url_invalid", "Image URL must be a valid URL")
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError:
        raise PydanticCustomError("image_url_invalid", "Image URL must be a valid URL")
    return value


# =============================================================================
# CATALOG ENTRIES
# =============================================================================

def check_catalog_name(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise PydanticCustomError("name_missing", "Name is required")
    name = value.strip()
    if len(name) > CATALOG_NAME_MAX_LENGTH:
        raise PydanticCustomError(
            "name_too_long", f"Name cannot exceed {CATALOG_NAME_MAX_LENGTH} characters"
        )
    return name


def check_color(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not _COLOR_PATTERN.fullmatch(value):
        raise PydanticCustomError("color_invalid", "Color must be a hex value like #1a2b3c")
    return value.lower()


def optional(check: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """Let None through, run the check on anything else."""

    def check_optional(value: Any) -> Any:
        if value is None:
            return None
        return check(value)

    return check_optional
