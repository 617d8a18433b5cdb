"""
Audit Models for Finance Tracker

Every significant action in the intake, receipt and chat flows is
recorded as an audit event. This provides:
1. Traceability of every write
2. The ONLY place internal error detail is kept (clients never see it)
3. Visibility into abuse (rate limiting, access denials)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Identity
    AUTHENTICATION_FAILED = "authentication_failed"

    # Validation
    VALIDATION_FAILED = "validation_failed"
    INVALID_REFERENCE = "invalid_reference"

    # Persistence
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    CATALOG_ENTRY_CREATED = "catalog_entry_created"
    ACCESS_DENIED = "access_denied"

    # AI paths
    RATE_LIMITED = "rate_limited"
    RECEIPT_EXTRACTED = "receipt_extracted"
    EXTRACTION_FAILED = "extraction_failed"
    CHAT_COMPLETED = "chat_completed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """One entry in the audit trail (one row of the AuditLog sheet)."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="'transaction', 'category', 'payment_source', 'receipt' or 'chat'",
    )
    entity_id: Optional[str] = None

    # Shared by every event of one request
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Server-side only
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    One constructor per event the flows emit.

    Usage:
        event = AuditEventBuilder.transaction_saved(user_id, tx.id, "12.50", True, cid)
        event = AuditEventBuilder.rate_limited(user_id, "ai-chat", reset_at, cid)
    """

    @staticmethod
    def authentication_failed(
        endpoint: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTHENTICATION_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Unauthenticated request to {endpoint}",
            details={"endpoint": endpoint},
        )

    @staticmethod
    def validation_failed(
        user_id: str,
        shape: str,
        errors: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"{shape.capitalize()} validation failed with {len(errors)} issues",
            details={
                "shape": shape,
                "errors": errors,
            },
        )

    @staticmethod
    def invalid_reference(
        user_id: str,
        field: str,
        reference_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVALID_REFERENCE,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Reference check failed for {field}",
            details={"field": field, "reference_id": reference_id},
        )

    @staticmethod
    def transaction_saved(
        user_id: str,
        transaction_id: str,
        amount: str,
        created: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.TRANSACTION_CREATED
                if created
                else AuditEventType.TRANSACTION_UPDATED
            ),
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction {'created' if created else 'updated'}: {amount}",
            details={"amount": amount},
        )

    @staticmethod
    def transaction_deleted(
        user_id: str,
        transaction_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
        )

    @staticmethod
    def catalog_entry_created(
        user_id: str,
        kind: str,
        entry_id: str,
        name: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATALOG_ENTRY_CREATED,
            user_id=user_id,
            entity_type=kind,
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"{kind.replace('_', ' ').capitalize()} created: {name}",
        )

    @staticmethod
    def access_denied(
        user_id: str,
        transaction_id: str,
        action: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Denied {action} of a transaction owned by another user",
            details={"action": action},
        )

    @staticmethod
    def rate_limited(
        user_id: str,
        endpoint: str,
        reset_at: Optional[datetime],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATE_LIMITED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Rate limit hit on {endpoint}",
            details={
                "endpoint": endpoint,
                "reset_at": reset_at.isoformat() if reset_at else None,
            },
        )

    @staticmethod
    def receipt_extracted(
        user_id: str,
        substituted: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_EXTRACTED,
            user_id=user_id,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Receipt data extracted",
            details={"substituted_fields": substituted},
        )

    @staticmethod
    def extraction_failed(
        user_id: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Receipt reply could not be decoded",
            error_message=reason,
        )

    @staticmethod
    def chat_completed(
        user_id: str,
        message_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAT_COMPLETED,
            user_id=user_id,
            entity_type="chat",
            correlation_id=correlation_id,
            description=f"Assistant replied to a {message_count}-message conversation",
            details={"message_count": message_count},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: UUID,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
