"""
Flow Outcomes

Every request handled by a flow ends in exactly one terminal outcome.
The outcome carries a machine-distinguishable status class and a
single user-facing message (plus the full field error list for
validation failures).

CRITICAL: Messages in a FlowResult are shown to the end user.
They must never contain store errors, upstream API bodies or stack
traces - those go to the server log and the audit trail only.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from finance_tracker.models.transaction import FieldError


class OutcomeStatus(str, Enum):
    """Terminal outcome classes."""
    SUCCESS = "success"
    UNAUTHENTICATED = "unauthenticated"
    VALIDATION_FAILED = "validation_failed"
    INVALID_REFERENCE = "invalid_reference"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_FAILURE = "upstream_failure"
    EXTRACTION_FAILED = "extraction_failed"
    SETUP_REQUIRED = "setup_required"
    INTERNAL = "internal"


class FlowResult(BaseModel):
    """Terminal outcome of one flow invocation."""

    status: OutcomeStatus
    data: Optional[Any] = None
    message: Optional[str] = None
    errors: list[FieldError] = Field(default_factory=list)

    # Which reference failed (InvalidReference) or which field was rejected
    field: Optional[str] = None

    # RateLimited only
    reset_at: Optional[datetime] = None

    # True when the flow wrote a new record
    created: bool = False

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @classmethod
    def success(cls, data: Any = None, created: bool = False) -> "FlowResult":
        return cls(status=OutcomeStatus.SUCCESS, data=data, created=created)

    @classmethod
    def failure(
        cls,
        status: OutcomeStatus,
        message: str,
        errors: Optional[list[FieldError]] = None,
        field: Optional[str] = None,
        reset_at: Optional[datetime] = None,
        data: Any = None,
    ) -> "FlowResult":
        return cls(
            status=status,
            message=message,
            errors=errors or [],
            field=field,
            reset_at=reset_at,
            data=data,
        )
