"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Use Google Sheets today and a real database later
2. Use in-memory storage for tests and local development
3. Keep the intake pipeline decoupled from the storage implementation

Every read and write that belongs to a user is scoped by user_id. The one
exception is get_transaction(), which loads a row regardless of owner so
the pipeline can tell "does not exist" apart from "belongs to someone else".
"""

from abc import ABC, abstractmethod
from datetime import date
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


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def insert_transaction(
        self,
        user_id: str,
        values: TransactionValues,
    ) -> Transaction:
        """
        Persist a new transaction.

        The store assigns id, created_at and updated_at.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """
        Load a transaction by id, whoever owns it.

        Returns:
            The transaction if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        user_id: str,
        transaction_id: str,
        values: TransactionValues,
    ) -> Transaction:
        """
        Replace the client-controlled fields of a transaction.

        Scoped to user_id: a row owned by another user is not found.

        Raises:
            NotFoundError: If no row with this id belongs to the user
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        """
        Delete a transaction owned by user_id.

        Returns:
            True if a row was removed
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None,
        limit: int = 1000,
    ) -> list[Transaction]:
        """
        List the user's transactions, newest first.

        Args:
            user_id: Owner
            date_from: Only transactions on or after this date
            date_to: Only transactions on or before this date
            transaction_type: Only income or only expense
            limit: Maximum number of results
        """
        pass


class CatalogStorageInterface(ABC):
    """
    Abstract interface for categories and payment sources.

    Catalog rows are owned per user. Lookups for another user's id
    return None, exactly as for an id that does not exist.
    """

    @abstractmethod
    async def get_category(self, user_id: str, category_id: str) -> Optional[Category]:
        pass

    @abstractmethod
    async def get_payment_source(
        self,
        user_id: str,
        payment_source_id: str,
    ) -> Optional[PaymentSource]:
        pass

    @abstractmethod
    async def list_categories(self, user_id: str) -> list[Category]:
        """The user's categories in creation order."""
        pass

    @abstractmethod
    async def list_payment_sources(self, user_id: str) -> list[PaymentSource]:
        """The user's payment sources in creation order."""
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    async def save_payment_source(self, payment_source: PaymentSource) -> PaymentSource:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events of one request, in chronological order."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
