"""
Data Models Package

This package contains the Pydantic models used in Finance Tracker.
Stored entities, validation results, flow outcomes and audit events.
"""

from finance_tracker.models.transaction import (
    Category,
    FieldError,
    PaymentSource,
    ReferenceCheck,
    Transaction,
    TransactionType,
    TransactionValues,
    ValidationResult,
    new_id,
)
from finance_tracker.models.outcome import FlowResult, OutcomeStatus
from finance_tracker.models.chat import ChatMessage, ChatRole
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "Category",
    "FieldError",
    "PaymentSource",
    "ReferenceCheck",
    "Transaction",
    "TransactionType",
    "TransactionValues",
    "ValidationResult",
    "new_id",
    # Outcomes
    "FlowResult",
    "OutcomeStatus",
    # Chat
    "ChatMessage",
    "ChatRole",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
