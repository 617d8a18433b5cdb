"""
Core Data Models for Finance Tracker

These models describe what is STORED. They are built only from data
that already passed validation (see finance_tracker.validation), so
they carry types, not business rules.

DESIGN DECISION: Categories and payment sources are owned per user.
Every catalog row carries the owner's user_id and every lookup is
scoped by it. A transaction may only reference catalog rows its
owner can see.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer


def new_id() -> str:
    """Store-assigned identifier."""
    return str(uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"


# =============================================================================
# CATALOG
# =============================================================================

class Category(BaseModel):
    """A spending/income category (e.g. Groceries)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    user_id: str
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PaymentSource(BaseModel):
    """Where the money came from or went to (e.g. Cash, Visa)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    user_id: str
    name: str = Field(..., min_length=1, max_length=100)
    created_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionValues(BaseModel):
    """
    The client-controlled part of a transaction, already validated.

    This is what the intake pipeline hands to storage on insert/update.
    """

    amount: Decimal
    type: TransactionType
    date: date
    category: str
    payment_source: str
    notes: Optional[str] = None
    image_url: Optional[str] = None

    @field_serializer("amount", when_used="json")
    def _amount_as_number(self, amount: Decimal) -> float:
        return float(amount)


class Transaction(TransactionValues):
    """
    A persisted transaction.

    id, user_id and timestamps are assigned by the store -
    never taken from a request body.
    """

    id: str = Field(default_factory=new_id)
    user_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# VALIDATION RESULTS
# =============================================================================

class FieldError(BaseModel):
    """A single field-level violation."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    issue_type: str = Field(
        default="invalid",
        description="Machine-readable kind of issue (e.g. 'missing', 'amount_zero')"
    )


class ValidationResult(BaseModel):
    """
    Result of validating a record against one of the record shapes.

    Every violation is listed - a submission with three bad fields
    gets three errors, not one.
    """

    is_valid: bool
    data: Optional[Any] = Field(
        default=None,
        description="The parsed record when valid"
    )
    errors: list[FieldError] = Field(default_factory=list)

    @property
    def error_fields(self) -> list[str]:
        return [error.field for error in self.errors]


class ReferenceCheck(BaseModel):
    """Outcome of the referential integrity lookups."""

    category_valid: bool
    payment_source_valid: bool

    @property
    def all_valid(self) -> bool:
        return self.category_valid and self.payment_source_valid
