"""
Transaction Record Shapes

Three explicit record shapes built from the same field validators:

    TransactionCreate   - a new transaction from a form
    TransactionUpdate   - the same constraints, plus an optional body id
    ReceiptDraft        - what the receipt model produced, looser:
                          amount defaults to 0, date defaults to today

DESIGN DECISION: No shape inherits from another. Each one declares
which fields are required, optional or defaulted, so reading a shape
tells you the whole contract for that path.

validate_record() is the only entry point the flows use. It never
raises - every violation comes back as a FieldError in one list.
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
)

from finance_tracker.models.transaction import (
    FieldError,
    TransactionType,
    TransactionValues,
    ValidationResult,
)
from finance_tracker.validation.fields import (
    check_amount,
    check_catalog_name,
    check_category_id,
    check_color,
    check_date,
    check_draft_amount,
    check_draft_date,
    check_image_url,
    check_notes,
    check_payment_source_id,
    check_transaction_id,
    check_transaction_type,
    check_user_id,
    optional,
)


# =============================================================================
# FIELD TYPES
# =============================================================================

Amount = Annotated[Decimal, BeforeValidator(check_amount)]
DraftAmount = Annotated[Decimal, BeforeValidator(check_draft_amount)]
Kind = Annotated[TransactionType, BeforeValidator(check_transaction_type)]
TransactionDate = Annotated[date, BeforeValidator(check_date)]
DraftDate = Annotated[date, BeforeValidator(check_draft_date)]
CategoryId = Annotated[str, BeforeValidator(check_category_id)]
PaymentSourceId = Annotated[str, BeforeValidator(check_payment_source_id)]
Notes = Annotated[Optional[str], BeforeValidator(check_notes)]
ImageUrl = Annotated[Optional[str], BeforeValidator(check_image_url)]
OptionalTransactionId = Annotated[Optional[str], BeforeValidator(optional(check_transaction_id))]
OptionalUserId = Annotated[Optional[str], BeforeValidator(optional(check_user_id))]
CatalogName = Annotated[str, BeforeValidator(check_catalog_name)]
Color = Annotated[Optional[str], BeforeValidator(check_color)]


REQUIRED_MESSAGES = {
    "amount": "Amount is required",
    "type": "Transaction type is required",
    "date": "Date is required",
    "category": "Category is required",
    "payment_source": "Payment source is required",
    "name": "Name is required",
}


# =============================================================================
# RECORD SHAPES
# =============================================================================

class TransactionCreate(BaseModel):
    """
    Create shape.

    user_id is accepted at schema level only because the pipeline
    injects the authenticated id before validating. It is never read
    from the client.
    """
    model_config = ConfigDict(extra="ignore")

    amount: Amount
    type: Kind
    date: TransactionDate
    category: CategoryId
    payment_source: PaymentSourceId
    notes: Notes = None
    image_url: ImageUrl = None
    user_id: OptionalUserId = None

    def to_values(self) -> TransactionValues:
        return TransactionValues(
            amount=self.amount,
            type=self.type,
            date=self.date,
            category=self.category,
            payment_source=self.payment_source,
            notes=self.notes,
            image_url=self.image_url,
        )


class TransactionUpdate(BaseModel):
    """
    Update shape.

    Same field constraints as create. The target id comes from the
    route; a body id is optional but must be a UUID when present.
    """
    model_config = ConfigDict(extra="ignore")

    id: OptionalTransactionId = None
    amount: Amount
    type: Kind
    date: TransactionDate
    category: CategoryId
    payment_source: PaymentSourceId
    notes: Notes = None
    image_url: ImageUrl = None
    user_id: OptionalUserId = None

    def to_values(self) -> TransactionValues:
        return TransactionValues(
            amount=self.amount,
            type=self.type,
            date=self.date,
            category=self.category,
            payment_source=self.payment_source,
            notes=self.notes,
            image_url=self.image_url,
        )


class ReceiptDraft(BaseModel):
    """
    Receipt extraction draft.

    A failed extraction still produces a reviewable draft (amount 0)
    instead of an error. Category and payment source must already be
    resolved to real catalog ids before this shape sees them.
    """
    model_config = ConfigDict(extra="ignore")

    amount: DraftAmount = Decimal("0")
    date: DraftDate = Field(default_factory=date.today)
    category: CategoryId
    payment_source: PaymentSourceId
    notes: Notes = None

    @field_serializer("amount", when_used="json")
    def _amount_as_number(self, amount: Decimal) -> float:
        return float(amount)

    def to_create_payload(
        self,
        transaction_type: TransactionType,
        on: date,
    ) -> dict[str, Any]:
        """
        Payload for the create path.

        The date is overridden by the caller (today) so a saved receipt
        shows up in the current month straight away.
        """
        return {
            "amount": self.amount,
            "type": transaction_type.value,
            "date": on.isoformat(),
            "category": self.category,
            "payment_source": self.payment_source,
            "notes": self.notes,
        }


class CategoryCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: CatalogName
    color: Color = None


class PaymentSourceCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: CatalogName


# =============================================================================
# ENTRY POINT
# =============================================================================

def _to_field_error(error: dict) -> FieldError:
    field = ".".join(str(part) for part in error["loc"]) or "body"

    if error["type"] == "missing":
        return FieldError(
            field=field,
            message=REQUIRED_MESSAGES.get(field, f"{field} is required"),
            issue_type="missing",
        )

    return FieldError(field=field, message=error["msg"], issue_type=error["type"])


def validate_record(shape: type[BaseModel], payload: Any) -> ValidationResult:
    """
    Validate a raw payload against a record shape.

    Returns:
        ValidationResult with the parsed record, or with every
        violation found.
    """
    if not isinstance(payload, Mapping):
        return ValidationResult(
            is_valid=False,
            errors=[FieldError(
                field="body",
                message="Request body must be a JSON object",
                issue_type="invalid_body",
            )],
        )

    try:
        record = shape.model_validate(dict(payload))
    except ValidationError as exc:
        return ValidationResult(
            is_valid=False,
            errors=[_to_field_error(error) for error in exc.errors()],
        )

    return ValidationResult(is_valid=True, data=record)
