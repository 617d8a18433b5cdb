"""
In-Memory Storage Implementation

Used by the test suite and as the local-development fallback when no
Google Sheets spreadsheet is configured. Data lives for the life of the
process only.

It follows the same ownership rules as the Sheets adapter, so flows
behave identically against either backend.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.transaction import (
    Category,
    PaymentSource,
    Transaction,
    TransactionType,
    TransactionValues,
)
from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    CatalogStorageInterface,
    DuplicateError,
    NotFoundError,
    TransactionStorageInterface,
)


def _newest_first(transaction: Transaction) -> tuple:
    return (transaction.date, transaction.created_at)


def _is_duplicate_name(existing: list, user_id: str, name: str) -> bool:
    return any(
        entry.user_id == user_id and entry.name.lower() == name.lower()
        for entry in existing
    )


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Transactions held in a dict keyed by id."""

    def __init__(self):
        self._rows: dict[str, Transaction] = {}

    async def insert_transaction(
        self,
        user_id: str,
        values: TransactionValues,
    ) -> Transaction:
        transaction = Transaction(user_id=user_id, **values.model_dump())
        self._rows[transaction.id] = transaction
        return transaction

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._rows.get(transaction_id)

    async def update_transaction(
        self,
        user_id: str,
        transaction_id: str,
        values: TransactionValues,
    ) -> Transaction:
        existing = self._rows.get(transaction_id)
        if existing is None or existing.user_id != user_id:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        updated = existing.model_copy(
            update={**values.model_dump(), "updated_at": datetime.utcnow()}
        )
        self._rows[transaction_id] = updated
        return updated

    async def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        existing = self._rows.get(transaction_id)
        if existing is None or existing.user_id != user_id:
            return False
        del self._rows[transaction_id]
        return True

    async def list_transactions(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None,
        limit: int = 1000,
    ) -> list[Transaction]:
        transactions = []
        for transaction in self._rows.values():
            if transaction.user_id != user_id:
                continue
            if date_from and transaction.date < date_from:
                continue
            if date_to and transaction.date > date_to:
                continue
            if transaction_type and transaction.type != transaction_type:
                continue
            transactions.append(transaction)

        transactions.sort(key=_newest_first, reverse=True)
        return transactions[:limit]


class InMemoryCatalogStorage(CatalogStorageInterface):
    """Categories and payment sources held in insertion-ordered dicts."""

    def __init__(self):
        self._categories: dict[str, Category] = {}
        self._payment_sources: dict[str, PaymentSource] = {}

    async def get_category(self, user_id: str, category_id: str) -> Optional[Category]:
        category = self._categories.get(category_id)
        if category is None or category.user_id != user_id:
            return None
        return category

    async def get_payment_source(
        self,
        user_id: str,
        payment_source_id: str,
    ) -> Optional[PaymentSource]:
        payment_source = self._payment_sources.get(payment_source_id)
        if payment_source is None or payment_source.user_id != user_id:
            return None
        return payment_source

    async def list_categories(self, user_id: str) -> list[Category]:
        return [c for c in self._categories.values() if c.user_id == user_id]

    async def list_payment_sources(self, user_id: str) -> list[PaymentSource]:
        return [p for p in self._payment_sources.values() if p.user_id == user_id]

    async def save_category(self, category: Category) -> Category:
        if category.id in self._categories:
            raise DuplicateError(f"Category already exists: {category.id}")
        if _is_duplicate_name(list(self._categories.values()), category.user_id, category.name):
            raise DuplicateError(f"Category name already used: {category.name}")
        self._categories[category.id] = category
        return category

    async def save_payment_source(self, payment_source: PaymentSource) -> PaymentSource:
        if payment_source.id in self._payment_sources:
            raise DuplicateError(f"Payment source already exists: {payment_source.id}")
        if _is_duplicate_name(
            list(self._payment_sources.values()),
            payment_source.user_id,
            payment_source.name,
        ):
            raise DuplicateError(f"Payment source name already used: {payment_source.name}")
        self._payment_sources[payment_source.id] = payment_source
        return payment_source


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events
