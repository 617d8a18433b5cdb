"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the persistent backend because:
1. Users can look at their own data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for personal finance)
- No transactions (a catalog row deleted between check and write is
  an accepted, store-reported failure)
- Limited query capabilities (we filter in Python)

CRITICAL: Sheets has no row-level security. Every user-scoped method here
filters on the user_id column itself - that filter IS the access control.

gspread is a blocking client. Every call goes through asyncio.to_thread
so a slow Sheets round trip never stalls the event loop.
"""

import asyncio
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from finance_tracker.config import GoogleSheetsSettings, get_settings
from finance_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
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
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")


# Column mappings for the Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "created_at",
    "updated_at",
    "amount",
    "type",
    "date",
    "category",
    "payment_source",
    "notes",
    "image_url",
]

CATEGORY_COLUMNS = ["id", "user_id", "name", "color", "created_at"]

PAYMENT_SOURCE_COLUMNS = ["id", "user_id", "name", "created_at"]

# Matches AuditEvent.to_sheets_row()
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


# Writes are retried; "not found" and "duplicate" are answers, not failures
write_retry = retry(
    retry=retry_if_not_exception_type((NotFoundError, DuplicateError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows (Sheets trims trailing blanks)."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for the connection.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound as e:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def _worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row on first use."""
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
            return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS)

    def get_categories_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.categories_sheet_name, CATEGORY_COLUMNS)

    def get_payment_sources_sheet(self) -> gspread.Worksheet:
        return self._worksheet(
            self._settings.payment_sources_sheet_name, PAYMENT_SOURCE_COLUMNS
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for the audit log
        return self._worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


async def _run(action: str, func: Callable[..., T], *args) -> T:
    """
    Run a blocking gspread call in a worker thread.

    Storage exceptions pass through untouched; anything else is wrapped
    in StorageError so callers only ever see the storage hierarchy.
    """
    try:
        return await asyncio.to_thread(func, *args)
    except StorageError:
        raise
    except Exception as e:
        raise StorageError(f"Failed to {action}: {e}") from e


# =============================================================================
# TRANSACTIONS
# =============================================================================

class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One transaction per row. Amounts are stored as decimal strings so no
    float rounding ever reaches the sheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, transaction: Transaction) -> list:
        return [
            transaction.id,
            transaction.user_id,
            transaction.created_at.isoformat(),
            transaction.updated_at.isoformat(),
            str(transaction.amount),
            transaction.type.value,
            transaction.date.isoformat(),
            transaction.category,
            transaction.payment_source,
            transaction.notes or "",
            transaction.image_url or "",
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        return Transaction(
            id=_cell(row, 0),
            user_id=_cell(row, 1),
            created_at=datetime.fromisoformat(_cell(row, 2)),
            updated_at=datetime.fromisoformat(_cell(row, 3)),
            amount=Decimal(_cell(row, 4)),
            type=TransactionType(_cell(row, 5)),
            date=date.fromisoformat(_cell(row, 6)),
            category=_cell(row, 7),
            payment_source=_cell(row, 8),
            notes=_cell(row, 9) or None,
            image_url=_cell(row, 10) or None,
        )

    def _rows(self) -> list[list]:
        # Skip header
        return self._client.get_transactions_sheet().get_all_values()[1:]

    # --- blocking helpers, always called through _run ---

    def _append(self, transaction: Transaction) -> None:
        sheet = self._client.get_transactions_sheet()
        sheet.append_row(self._transaction_to_row(transaction), value_input_option="RAW")

    def _find(self, transaction_id: str) -> Optional[Transaction]:
        for row in self._rows():
            if row and row[0] == transaction_id:
                return self._row_to_transaction(row)
        return None

    def _replace(self, user_id: str, transaction_id: str, values: TransactionValues) -> Transaction:
        sheet = self._client.get_transactions_sheet()
        all_rows = sheet.get_all_values()

        # Row 1 is the header
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == transaction_id and _cell(row, 1) == user_id:
                existing = self._row_to_transaction(row)
                updated = existing.model_copy(
                    update={**values.model_dump(), "updated_at": datetime.utcnow()}
                )
                sheet.update(
                    values=[self._transaction_to_row(updated)],
                    range_name=f"A{idx}:{rowcol_to_a1(idx, len(TRANSACTION_COLUMNS))}",
                    value_input_option="RAW",
                )
                return updated

        raise NotFoundError(f"Transaction not found: {transaction_id}")

    def _remove(self, user_id: str, transaction_id: str) -> bool:
        sheet = self._client.get_transactions_sheet()
        all_rows = sheet.get_all_values()

        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == transaction_id and _cell(row, 1) == user_id:
                sheet.delete_rows(idx)
                return True
        return False

    def _select(self, user_id: str) -> list[Transaction]:
        transactions = []
        for row in self._rows():
            if not row or not row[0] or _cell(row, 1) != user_id:
                continue
            try:
                transactions.append(self._row_to_transaction(row))
            except (ValueError, IndexError):
                logger.warning("malformed_transaction_row", row_id=row[0])
        return transactions

    # --- interface ---

    @write_retry
    async def insert_transaction(
        self,
        user_id: str,
        values: TransactionValues,
    ) -> Transaction:
        """Append a new transaction row."""
        transaction = Transaction(user_id=user_id, **values.model_dump())
        await _run("save transaction", self._append, transaction)
        return transaction

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return await _run("get transaction", self._find, transaction_id)

    @write_retry
    async def update_transaction(
        self,
        user_id: str,
        transaction_id: str,
        values: TransactionValues,
    ) -> Transaction:
        return await _run("update transaction", self._replace, user_id, transaction_id, values)

    async def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        return await _run("delete transaction", self._remove, user_id, transaction_id)

    async def list_transactions(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None,
        limit: int = 1000,
    ) -> list[Transaction]:
        transactions = await _run("list transactions", self._select, user_id)

        # Apply filters
        transactions = [
            t for t in transactions
            if (date_from is None or t.date >= date_from)
            and (date_to is None or t.date <= date_to)
            and (transaction_type is None or t.type == transaction_type)
        ]

        # Sort by date descending (newest first)
        transactions.sort(key=lambda t: (t.date, t.created_at), reverse=True)
        return transactions[:limit]


# =============================================================================
# CATALOG
# =============================================================================

class GoogleSheetsCatalogStorage(CatalogStorageInterface):
    """Categories and payment sources, one worksheet each."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _categories(self, user_id: str) -> list[Category]:
        rows = self._client.get_categories_sheet().get_all_values()[1:]
        return [
            Category(
                id=_cell(row, 0),
                user_id=_cell(row, 1),
                name=_cell(row, 2),
                color=_cell(row, 3) or None,
                created_at=datetime.fromisoformat(_cell(row, 4)),
            )
            for row in rows
            if row and row[0] and _cell(row, 1) == user_id
        ]

    def _payment_sources(self, user_id: str) -> list[PaymentSource]:
        rows = self._client.get_payment_sources_sheet().get_all_values()[1:]
        return [
            PaymentSource(
                id=_cell(row, 0),
                user_id=_cell(row, 1),
                name=_cell(row, 2),
                created_at=datetime.fromisoformat(_cell(row, 3)),
            )
            for row in rows
            if row and row[0] and _cell(row, 1) == user_id
        ]

    def _append_category(self, category: Category) -> None:
        existing = self._categories(category.user_id)
        if any(c.name.lower() == category.name.lower() for c in existing):
            raise DuplicateError(f"Category name already used: {category.name}")
        self._client.get_categories_sheet().append_row(
            [
                category.id,
                category.user_id,
                category.name,
                category.color or "",
                category.created_at.isoformat(),
            ],
            value_input_option="RAW",
        )

    def _append_payment_source(self, payment_source: PaymentSource) -> None:
        existing = self._payment_sources(payment_source.user_id)
        if any(p.name.lower() == payment_source.name.lower() for p in existing):
            raise DuplicateError(f"Payment source name already used: {payment_source.name}")
        self._client.get_payment_sources_sheet().append_row(
            [
                payment_source.id,
                payment_source.user_id,
                payment_source.name,
                payment_source.created_at.isoformat(),
            ],
            value_input_option="RAW",
        )

    async def get_category(self, user_id: str, category_id: str) -> Optional[Category]:
        categories = await self.list_categories(user_id)
        return next((c for c in categories if c.id == category_id), None)

    async def get_payment_source(
        self,
        user_id: str,
        payment_source_id: str,
    ) -> Optional[PaymentSource]:
        payment_sources = await self.list_payment_sources(user_id)
        return next((p for p in payment_sources if p.id == payment_source_id), None)

    async def list_categories(self, user_id: str) -> list[Category]:
        return await _run("list categories", self._categories, user_id)

    async def list_payment_sources(self, user_id: str) -> list[PaymentSource]:
        return await _run("list payment sources", self._payment_sources, user_id)

    @write_retry
    async def save_category(self, category: Category) -> Category:
        await _run("save category", self._append_category, category)
        return category

    @write_retry
    async def save_payment_source(self, payment_source: PaymentSource) -> PaymentSource:
        await _run("save payment source", self._append_payment_source, payment_source)
        return payment_source


# =============================================================================
# AUDIT
# =============================================================================

class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            user_id=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=_cell(row, 6) or None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
        )

    def _append(self, event: AuditEvent) -> None:
        self._client.get_audit_sheet().append_row(
            event.to_sheets_row(), value_input_option="RAW"
        )

    def _by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = []
        for row in self._client.get_audit_sheet().get_all_values()[1:]:
            if _cell(row, 7) == str(correlation_id):
                try:
                    events.append(self._row_to_event(row))
                except (ValueError, IndexError):
                    logger.warning("malformed_audit_row", row_id=_cell(row, 0))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _append_with_retry(self, event: AuditEvent) -> None:
        await _run("write audit event", self._append, event)

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Never raises - audit must not break the main flow."""
        try:
            await self._append_with_retry(event)
            return True
        except StorageError as e:
            logger.error(
                "audit_sheet_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = await _run("get audit events", self._by_correlation_id, correlation_id)
        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events
