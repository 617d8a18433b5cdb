"""
Tests for Finance Tracker

Test strategy:
1. Unit tests for individual components (models, validators, limiter)
2. Integration tests for flows (with in-memory storage and a fake model)
3. No real API calls in tests (use fakes)
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_tracker.models import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    Category,
    ChatMessage,
    ChatRole,
    FieldError,
    FlowResult,
    OutcomeStatus,
    ReferenceCheck,
    Transaction,
    TransactionType,
    TransactionValues,
    ValidationResult,
)


class TestTransactionModels:
    """Tests for stored transaction and catalog models."""

    def test_transaction_gets_store_assigned_fields(self):
        """Test id and timestamps are filled in by the model."""
        transaction = Transaction(
            user_id=str(uuid4()),
            amount=Decimal("12.50"),
            type=TransactionType.EXPENSE,
            date=date(2024, 3, 1),
            category=str(uuid4()),
            payment_source=str(uuid4()),
        )
        assert transaction.id
        assert transaction.created_at <= datetime.utcnow()
        assert transaction.notes is None

    def test_amount_serializes_as_number_in_json(self):
        """Test amounts leave the API as JSON numbers, not strings."""
        values = TransactionValues(
            amount=Decimal("42.50"),
            type=TransactionType.INCOME,
            date=date(2024, 3, 1),
            category=str(uuid4()),
            payment_source=str(uuid4()),
        )
        dumped = json.loads(values.model_dump_json())
        assert dumped["amount"] == 42.5
        assert dumped["type"] == "income"
        assert dumped["date"] == "2024-03-01"

    def test_amount_stays_decimal_in_python_dump(self):
        """Test python-mode dumps keep Decimal precision."""
        values = TransactionValues(
            amount=Decimal("0.10"),
            type=TransactionType.EXPENSE,
            date=date(2024, 3, 1),
            category="c",
            payment_source="p",
        )
        assert values.model_dump()["amount"] == Decimal("0.10")

    def test_category_strips_whitespace(self):
        """Test that whitespace is stripped from catalog names."""
        category = Category(user_id=str(uuid4()), name="  Groceries  ")
        assert category.name == "Groceries"

    def test_category_rejects_empty_name(self):
        """Test catalog names cannot be empty."""
        with pytest.raises(ValueError):
            Category(user_id=str(uuid4()), name="   ")

    def test_transaction_type_values(self):
        """Test transaction type string values."""
        assert TransactionType.INCOME.value == "income"
        assert TransactionType.EXPENSE.value == "expense"
        with pytest.raises(ValueError):
            TransactionType("Income")


class TestOutcomeModels:
    """Tests for FlowResult."""

    def test_success(self):
        """Test a success result."""
        result = FlowResult.success({"id": "x"}, created=True)
        assert result.ok is True
        assert result.status == OutcomeStatus.SUCCESS
        assert result.created is True
        assert result.data == {"id": "x"}

    def test_failure_carries_errors_and_field(self):
        """Test a failure keeps every field error."""
        errors = [
            FieldError(field="amount", message="Amount cannot be zero", issue_type="amount_zero"),
            FieldError(field="date", message="Date is required", issue_type="missing"),
        ]
        result = FlowResult.failure(
            OutcomeStatus.VALIDATION_FAILED, "Validation failed", errors=errors
        )
        assert result.ok is False
        assert len(result.errors) == 2
        assert result.reset_at is None

    def test_failure_with_reset_at(self):
        """Test rate limited results carry the reset time."""
        reset_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        result = FlowResult.failure(OutcomeStatus.RATE_LIMITED, "slow down", reset_at=reset_at)
        assert result.reset_at == reset_at


class TestValidationResult:
    """Tests for ValidationResult and ReferenceCheck."""

    def test_error_fields(self):
        """Test error_fields lists the failing fields in order."""
        result = ValidationResult(
            is_valid=False,
            errors=[
                FieldError(field="amount", message="a"),
                FieldError(field="category", message="b"),
            ],
        )
        assert result.error_fields == ["amount", "category"]

    def test_reference_check_all_valid(self):
        """Test all_valid requires both references."""
        assert ReferenceCheck(category_valid=True, payment_source_valid=True).all_valid
        assert not ReferenceCheck(category_valid=True, payment_source_valid=False).all_valid
        assert not ReferenceCheck(category_valid=False, payment_source_valid=True).all_valid


class TestChatModels:
    """Tests for chat messages."""

    def test_roles(self):
        """Test the three conversation roles."""
        assert {r.value for r in ChatRole} == {"system", "user", "assistant"}

    def test_empty_content_rejected(self):
        """Test a message needs content."""
        with pytest.raises(ValueError):
            ChatMessage(role="user", content="")

    def test_extra_keys_ignored(self):
        """Test client-side extras (ids, timestamps) are dropped."""
        message = ChatMessage(role="assistant", content="Hi", id="abc")
        assert message.role == ChatRole.ASSISTANT
        assert not hasattr(message, "id")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Transaction created: 10",
        )
        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.RATE_LIMITED,
            description="Rate limit hit on ai-chat",
            details={"endpoint": "ai-chat"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "rate_limited"
        assert log_dict["details"]["endpoint"] == "ai-chat"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        correlation_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description="System error: KeyError",
            details={"where": "intake"},
            error_message="boom",
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "system_error"
        assert row[7] == str(correlation_id)
        assert json.loads(row[9]) == {"where": "intake"}
        assert row[10] == "boom"

    def test_transaction_saved_event(self):
        """Test AuditEventBuilder.transaction_saved picks created/updated."""
        correlation_id = uuid4()
        created = AuditEventBuilder.transaction_saved(
            user_id="u", transaction_id="t", amount="10", created=True,
            correlation_id=correlation_id,
        )
        updated = AuditEventBuilder.transaction_saved(
            user_id="u", transaction_id="t", amount="10", created=False,
            correlation_id=correlation_id,
        )
        assert created.event_type == AuditEventType.TRANSACTION_CREATED
        assert updated.event_type == AuditEventType.TRANSACTION_UPDATED
        assert created.entity_id == "t"
        assert created.correlation_id == correlation_id

    def test_access_denied_is_a_warning(self):
        """Test AuditEventBuilder.access_denied."""
        event = AuditEventBuilder.access_denied(
            user_id="u", transaction_id="t", action="update", correlation_id=uuid4()
        )
        assert event.event_type == AuditEventType.ACCESS_DENIED
        assert event.severity == AuditSeverity.WARNING
        assert event.details == {"action": "update"}

    def test_external_service_error_keeps_detail_server_side(self):
        """Test the upstream error text lives in error_message."""
        event = AuditEventBuilder.external_service_error(
            service="gemini",
            error_message="ServiceUnavailable: 503 backend down",
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.ERROR
        assert "503" in event.error_message
        assert "503" not in event.description


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
