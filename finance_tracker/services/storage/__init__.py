"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the persistent backend; the in-memory implementation backs
the tests and local development.
"""

from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    CatalogStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)
from finance_tracker.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsCatalogStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
)
from finance_tracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryCatalogStorage,
    InMemoryTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CatalogStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsCatalogStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTransactionStorage",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryCatalogStorage",
    "InMemoryTransactionStorage",
]
