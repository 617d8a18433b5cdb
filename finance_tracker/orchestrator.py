"""
Main Orchestrator for Finance Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Transaction intake (identity -> validate -> references -> persist)
2. Receipt scan (identity -> rate limit -> image -> AI read -> draft
   -> optionally the intake create path)
3. Assistant chat (identity -> rate limit -> messages -> context -> AI)

DESIGN DECISION: Every flow ends in exactly one FlowResult. Flows never
raise to the caller:
- Storage failures become UPSTREAM_FAILURE with a generic message
- AI failures become RATE_LIMITED / UPSTREAM_FAILURE / EXTRACTION_FAILED
- Anything unexpected becomes INTERNAL
The detail behind each of these goes to the audit trail, never to the user.

CRITICAL ORDERING (intake):
- No storage access happens before schema validation passed
- No write happens before the referenced category and payment source
  were confirmed to belong to the caller
- Ownership comes from the verified token, never from the request body
"""

from collections.abc import Mapping
from datetime import date
from typing import Any, Awaitable, Callable, NamedTuple, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError
from pydantic_core import PydanticCustomError

from finance_tracker.agents import (
    MESSAGES_REQUIRED,
    ReceiptReader,
    SpendingAssistant,
    coerce_extraction,
    parse_messages,
)
from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.config import AppSettings, Settings, get_settings
from finance_tracker.models.audit import AuditEvent, AuditEventBuilder
from finance_tracker.models.outcome import FlowResult, OutcomeStatus
from finance_tracker.models.transaction import (
    Category,
    FieldError,
    PaymentSource,
    TransactionType,
)
from finance_tracker.queries import FinancialSummaryBuilder
from finance_tracker.ratelimit import EndpointClass, RateLimiter
from finance_tracker.services.ai import (
    AIAuthenticationError,
    AIRateLimitedError,
    AIResponseError,
    AIServiceError,
    DecodeResult,
    GeminiClient,
)
from finance_tracker.services.auth import IdentityResolver
from finance_tracker.services.image import ImageRejectedError, decode_receipt_image
from finance_tracker.services.storage import (
    CatalogStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsCatalogStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
    InMemoryCatalogStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)
from finance_tracker.validation import (
    CategoryCreate,
    PaymentSourceCreate,
    ReceiptDraft,
    ReferentialIntegrityChecker,
    TransactionCreate,
    TransactionUpdate,
    validate_record,
)
from finance_tracker.validation.fields import (
    check_transaction_id,
    check_transaction_type,
    parse_date,
)


logger = structlog.get_logger(__name__)


# =============================================================================
# USER-FACING MESSAGES
# =============================================================================

UNAUTHORIZED = "Unauthorized. Please log in."
VALIDATION_FAILED = "Validation failed"
FORBIDDEN = "You do not have access to this transaction."
NOT_FOUND = "Transaction not found"
STORAGE_FAILURE = "Could not reach storage. Please try again later."
INTERNAL_ERROR = "Something went wrong. Please try again."
SETUP_REQUIRED = (
    "Please set up at least one category and payment source before scanning receipts."
)
EXTRACTION_FAILED = "Failed to parse receipt data. Please try again."
AI_BUSY = "AI service is busy. Please try again in a moment."
AI_AUTH_FAILED = "AI service authentication failed. Please try again later."
AI_UNAVAILABLE = "AI service is temporarily unavailable. Please try again later."

REFERENCE_MESSAGES = {
    "category": "Invalid category selected",
    "payment_source": "Invalid payment source selected",
}


def rate_limited_message(seconds: int) -> str:
    return f"Rate limit exceeded. Please wait {seconds} seconds before trying again."


def _single_error(field: str, message: str, issue_type: str = "invalid") -> FlowResult:
    return FlowResult.failure(
        OutcomeStatus.VALIDATION_FAILED,
        VALIDATION_FAILED,
        errors=[FieldError(field=field, message=message, issue_type=issue_type)],
        field=field,
    )


# =============================================================================
# SHARED FLOW PLUMBING
# =============================================================================

class _Flow:
    """Identity, audit and failure mapping shared by every flow."""

    def __init__(
        self,
        identity: Optional[IdentityResolver] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._identity = identity or IdentityResolver()
        self._audit_logger = audit_logger or AuditLogger()

    async def _audit(self, event: AuditEvent) -> None:
        await self._audit_logger.log(event)

    async def _authenticate(
        self,
        credential: Optional[str],
        endpoint: str,
        correlation_id: UUID,
    ) -> Optional[str]:
        user_id = self._identity.resolve(credential)
        if user_id is None:
            await self._audit(AuditEventBuilder.authentication_failed(endpoint, correlation_id))
        return user_id

    async def _guarded(
        self,
        operation: Callable[[], Awaitable[FlowResult]],
        user_id: str,
        correlation_id: UUID,
    ) -> FlowResult:
        """Run a flow body, converting escaped exceptions into outcomes."""
        try:
            return await operation()
        except StorageError as e:
            await self._audit_logger.log_external_service_error(
                service="storage",
                error_message=str(e),
                correlation_id=correlation_id,
                user_id=user_id,
            )
            return FlowResult.failure(OutcomeStatus.UPSTREAM_FAILURE, STORAGE_FAILURE)
        except Exception as e:
            logger.exception("flow_failed", correlation_id=str(correlation_id))
            await self._audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return FlowResult.failure(OutcomeStatus.INTERNAL, INTERNAL_ERROR)

    async def _validation_failed(
        self,
        user_id: str,
        shape: str,
        errors: list[FieldError],
        correlation_id: UUID,
    ) -> FlowResult:
        await self._audit(AuditEventBuilder.validation_failed(
            user_id=user_id,
            shape=shape,
            errors=[error.model_dump() for error in errors],
            correlation_id=correlation_id,
        ))
        return FlowResult.failure(
            OutcomeStatus.VALIDATION_FAILED,
            VALIDATION_FAILED,
            errors=errors,
        )


def _with_owner(payload: Any, user_id: str) -> Any:
    """Overwrite any client-sent user_id with the authenticated one."""
    if isinstance(payload, Mapping):
        return {**payload, "user_id": user_id}
    return payload


# =============================================================================
# TRANSACTION INTAKE
# =============================================================================

class TransactionIntakeFlow(_Flow):
    """
    Orchestrates transaction writes and reads.

    Flow (create / update):
    1. Identity      -> UNAUTHENTICATED
    2. Schema        -> VALIDATION_FAILED (every violation, no store access)
    3. References    -> INVALID_REFERENCE
    4. Ownership     -> NOT_FOUND / FORBIDDEN (update only)
    5. Persist       -> the stored record

    No automatic retries at this level.
    """

    def __init__(
        self,
        transactions: TransactionStorageInterface,
        catalog: CatalogStorageInterface,
        identity: Optional[IdentityResolver] = None,
        audit_logger: Optional[AuditLogger] = None,
        checker: Optional[ReferentialIntegrityChecker] = None,
    ):
        super().__init__(identity, audit_logger)
        self._transactions = transactions
        self._catalog = catalog
        self._checker = checker or ReferentialIntegrityChecker(catalog)

    # --- helpers -----------------------------------------------------------

    async def _check_references(
        self,
        user_id: str,
        category_id: str,
        payment_source_id: str,
        correlation_id: UUID,
    ) -> Optional[FlowResult]:
        check = await self._checker.verify_owned(user_id, category_id, payment_source_id)
        if check.all_valid:
            return None

        field, reference_id = (
            ("category", category_id)
            if not check.category_valid
            else ("payment_source", payment_source_id)
        )
        await self._audit(AuditEventBuilder.invalid_reference(
            user_id=user_id,
            field=field,
            reference_id=reference_id,
            correlation_id=correlation_id,
        ))
        return FlowResult.failure(
            OutcomeStatus.INVALID_REFERENCE,
            REFERENCE_MESSAGES[field],
            field=field,
        )

    async def _load_owned(
        self,
        user_id: str,
        transaction_id: str,
        action: str,
        correlation_id: UUID,
    ) -> Optional[FlowResult]:
        """None if the caller owns the transaction, otherwise the failure."""
        existing = await self._transactions.get_transaction(transaction_id)
        if existing is None:
            return FlowResult.failure(OutcomeStatus.NOT_FOUND, NOT_FOUND)
        if existing.user_id != user_id:
            await self._audit(AuditEventBuilder.access_denied(
                user_id=user_id,
                transaction_id=transaction_id,
                action=action,
                correlation_id=correlation_id,
            ))
            return FlowResult.failure(OutcomeStatus.FORBIDDEN, FORBIDDEN)
        return None

    # --- create ------------------------------------------------------------

    async def create_for_user(
        self,
        user_id: str,
        payload: Any,
        correlation_id: UUID,
    ) -> FlowResult:
        """
        Create path for an already-authenticated user.

        Used directly by the receipt flow when a scanned receipt is saved.
        """
        result = validate_record(TransactionCreate, _with_owner(payload, user_id))
        if not result.is_valid:
            return await self._validation_failed(user_id, "create", result.errors, correlation_id)

        record: TransactionCreate = result.data
        failure = await self._check_references(
            user_id, record.category, record.payment_source, correlation_id
        )
        if failure:
            return failure

        transaction = await self._transactions.insert_transaction(user_id, record.to_values())
        await self._audit(AuditEventBuilder.transaction_saved(
            user_id=user_id,
            transaction_id=transaction.id,
            amount=str(transaction.amount),
            created=True,
            correlation_id=correlation_id,
        ))
        return FlowResult.success(transaction, created=True)

    async def create_transaction(self, credential: Optional[str], payload: Any) -> FlowResult:
        correlation_id = create_correlation_id()
        user_id = await self._authenticate(credential, "transactions.create", correlation_id)
        if user_id is None:
            return FlowResult.failure(OutcomeStatus.UNAUTHENTICATED, UNAUTHORIZED)

        return await self._guarded(
            lambda: self.create_for_user(user_id, payload, correlation_id),
            user_id,
            correlation_id,
        )

    # --- update ------------------------------------------------------------

    async def _update(
        self,
        user_id: str,
        transaction_id: Any,
        payload: Any,
        correlation_id: UUID,
    ) -> FlowResult:
        try:
            transaction_id = check_transaction_id(transaction_id)
        except PydanticCustomError as e:
            return _single_error("id", e.message(), e.type)

        result = validate_record(TransactionUpdate, _with_owner(payload, user_id))
        if not result.is_valid:
            return await self._validation_failed(user_id, "update", result.errors, correlation_id)

        record: TransactionUpdate = result.data
        if record.id is not None and record.id != transaction_id:
            return await self._validation_failed(
                user_id,
                "update",
                [FieldError(
                    field="id",
                    message="Transaction ID does not match the URL",
                    issue_type="id_mismatch",
                )],
                correlation_id,
            )

        failure = await self._check_references(
            user_id, record.category, record.payment_source, correlation_id
        )
        if failure:
            return failure

        failure = await self._load_owned(user_id, transaction_id, "update", correlation_id)
        if failure:
            return failure

        try:
            transaction = await self._transactions.update_transaction(
                user_id, transaction_id, record.to_values()
            )
        except NotFoundError:
            # Deleted between the ownership check and the write
            return FlowResult.failure(OutcomeStatus.NOT_FOUND, NOT_FOUND)

        await self._audit(AuditEventBuilder.transaction_saved(
            user_id=user_id,
            transaction_id=transaction.id,
            amount=str(transaction.amount),
            created=False,
            correlation_id=correlation_id,
        ))
        return FlowResult.success(transaction)

    async def update_transaction(
        self,
        credential: Optional[str],
        transaction_id: Any,
        payload: Any,
    ) -> FlowResult:
        correlation_id = create_correlation_id()
        user_id = await self._authenticate(credential, "transactions.update", correlation_id)
        if user_id is None:
            return FlowResult.failure(OutcomeStatus.UNAUTHENTICATED, UNAUTHORIZED)

        return await self._guarded(
            lambda: self._update(user_id, transaction_id, payload, correlation_id),
            user_id,
            correlation_id,
        )

    # --- delete ------------------------------------------------------------

    async def _delete(self, user_id: str, transaction_id: Any, correlation_id: UUID) -> FlowResult:
        try:
            transaction_id = check_transaction_id(transaction_id)
        except PydanticCustomError as e:
            return _single_error("id", e.message(), e.type)

        failure = await self._load_owned(user_id, transaction_id, "delete", correlation_id)
        if failure:
            return failure

        if not await self._transactions.delete_transaction(user_id, transaction_id):
            return FlowResult.failure(OutcomeStatus.NOT_FOUND, NOT_FOUND)

        await self._audit(AuditEventBuilder.transaction_deleted(
            user_id=user_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))
        return FlowResult.success({"id": transaction_id})

    async def delete_transaction(self, credential: Optional[str], transaction_id: Any) -> FlowResult:
        correlation_id = create_correlation_id()
        user_id = await self._authenticate(credential, "transactions.delete", correlation_id)
        if user_id is None:
            return FlowResult.failure(OutcomeStatus.UNAUTHENTICATED, UNAUTHORIZED)

        return await self._guarded(
            lambda: self._delete(user_id, transaction_id, correlation_id),
            user_id,
            correlation_id,
        )

    # --- list --------------------------------------------------------------

    async def _list(
        self,
        user_id: str,
        date_from: Optional[str],
        date_to: Optional[str],
        transaction_type: Optional[str],
    ) -> FlowResult:
        errors = []
        filters: dict[str, Any] = {}

        for name, value in (("date_from", date_from), ("date_to", date_to)):
            if value is None:
                continue
            try:
                filters[name] = parse_date(value)
            except PydanticCustomError as e:
                errors.append(FieldError(field=name, message=e.message(), issue_type=e.type))

        if transaction_type is not None:
            try:
                filters["transaction_type"] = check_transaction_type(transaction_type)
            except PydanticCustomError as e:
                errors.append(FieldError(field="type", message=e.message(), issue_type=e.type))

        if errors:
            return FlowResult.failure(OutcomeStatus.VALIDATION_FAILED, VALIDATION_FAILED, errors=errors)

        transactions = await self._transactions.list_transactions(user_id, **filters)
        return FlowResult.success(transactions)

    async def list_transactions(
        self,
        credential: Optional[str],
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        transaction_type: Optional[str] = None,
    ) -> FlowResult:
        correlation_id = create_correlation_id()
        user_id = await self._authenticate(credential, "transactions.list", correlation_id)
        if user_id is None:
            return FlowResult.failure(OutcomeStatus.UNAUTHENTICATED, UNAUTHORIZED)

        return await self._guarded(
            lambda: self._list(user_id, date_from, date_to, transaction_type),
            user_id,
            correlation_id,
        )

    # --- catalog -----------------------------------------------------------

    async def _create_catalog_entry(
        self,
        user_id: str,
        kind: str,
        payload: Any,
        correlation_id: UUID,
    ) -> FlowResult:
        shape = CategoryCreate if kind == "category" else PaymentSourceCreate
        result = validate_record(shape, payload)
        if not result.is_valid:
            return await self._validation_failed(user_id, kind, result.errors, correlation_id)

        try:
            if kind == "category":
                entry = await self._catalog.save_category(
                    Category(user_id=user_id, **result.data.model_dump())
                )
            else:
                entry = await self._catalog.save_payment_source(
                    PaymentSource(user_id=user_id, **result.data.model_dump())
                )
        except DuplicateError:
            return _single_error("name", "An entry with this name already exists", "duplicate")

        await self._audit(AuditEventBuilder.catalog_entry_created(
            user_id=user_id,
            kind=kind,
            entry_id=entry.id,
            name=entry.name,
            correlation_id=correlation_id,
        ))
        return FlowResult.success(entry, created=True)

    async def create_category(self, credential: Optional[str], payload: Any) -> FlowResult:
        correlation_id = create_correlation_id()
        user_id = await self._authenticate(credential, "categories.create", correlation_id)
        if user_id is None:
            return FlowResult.failure(OutcomeStatus.UNAUTHENTICATED, UNAUTHORIZED)

        return await self._guarded(
            lambda: self._create_catalog_entry(user_id, "category", payload, correlation_id),
            user_id,
            correlation_id,
        )

    async def create_payment_source(self, credential: Optional[str], payload: Any) -> FlowResult:
        correlation_id = create_correlation_id()
        user_id = await self._authenticate(credential, "payment_sources.create", correlation_id)
        if user_id is None:
            return FlowResult.failure(OutcomeStatus.UNAUTHENTICATED, UNAUTHORIZED)

        return await self._guarded(
            lambda: self._create_catalog_entry(user_id, "payment_source", payload, correlation_id),
            user_id,
            correlation_id,
        )

    async def _list_catalog(self, user_id: str, kind: str) -> FlowResult:
        if kind == "category":
            return FlowResult.success(await self._catalog.list_categories(user_id))
        return FlowResult.success(await self._catalog.list_payment_sources(user_id))

    async def list_categories(self, credential: Optional[str]) -> FlowResult:
        correlation_id = create_correlation_id()
        user_id = await self._authenticate(credential, "categories.list", correlation_id)
        if user_id is None:
            return FlowResult.failure(OutcomeStatus.UNAUTHENTICATED, UNAUTHORIZED)

        return await self._guarded(
            lambda: self._list_catalog(user_id, "category"), user_id, correlation_id
        )

    async def list_payment_sources(self, credential: Optional[str]) -> FlowResult:
        correlation_id = create_correlation_id()
        user_id = await self._authenticate(credential, "payment_sources.list", correlation_id)
        if user_id is None:
            return FlowResult.failure(OutcomeStatus.UNAUTHENTICATED, UNAUTHORIZED)

        return await self._guarded(
            lambda: self._list_catalog(user_id, "payment_source"), user_id, correlation_id
        )


# =============================================================================
# RATE-LIMITED AI FLOWS
# =============================================================================

class _RateLimitedFlow(_Flow):
    def __init__(
        self,
        rate_limiter: RateLimiter,
        identity: Optional[IdentityResolver] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(identity, audit_logger)
        self._rate_limiter = rate_limiter

    async def _enforce_limit(
        self,
        endpoint: EndpointClass,
        user_id: str,
        correlation_id: UUID,
    ) -> Optional[FlowResult]:
        decision = self._rate_limiter.check_endpoint(endpoint, user_id)
        if decision.allowed:
            return None

        await self._audit(AuditEventBuilder.rate_limited(
            user_id=user_id,
            endpoint=endpoint.value,
            reset_at=decision.reset_at,
            correlation_id=correlation_id,
        ))
        seconds = decision.retry_after_seconds(self._rate_limiter.now())
        return FlowResult.failure(
            OutcomeStatus.RATE_LIMITED,
            rate_limited_message(seconds),
            reset_at=decision.reset_at,
        )

    async def _ai_failure(
        self,
        error: AIServiceError,
        user_id: str,
        correlation_id: UUID,
    ) -> FlowResult:
        await self._audit_logger.log_external_service_error(
            service="gemini",
            error_message=f"{type(error).__name__}: {error}",
            correlation_id=correlation_id,
            user_id=user_id,
        )
        if isinstance(error, AIRateLimitedError):
            return FlowResult.failure(OutcomeStatus.RATE_LIMITED, AI_BUSY)
        if isinstance(error, AIAuthenticationError):
            return FlowResult.failure(OutcomeStatus.UPSTREAM_FAILURE, AI_AUTH_FAILED)
        return FlowResult.failure(OutcomeStatus.UPSTREAM_FAILURE, AI_UNAVAILABLE)


class ReceiptScanFlow(_RateLimitedFlow):
    """
    Orchestrates the receipt scan.

    Flow:
    1. Identity, then the receipt rate limit
    2. Decode and sniff the image      -> VALIDATION_FAILED on "image"
    3. Load the user's catalog         -> SETUP_REQUIRED if empty
    4. One vision call                 -> RATE_LIMITED / UPSTREAM_FAILURE
    5. Decode the reply                -> EXTRACTION_FAILED (also empty/blocked)
    6. Coerce onto the catalog, validate as a draft
    7. If save=True: the intake create path, dated today

    The image is never persisted.
    """

    def __init__(
        self,
        catalog: CatalogStorageInterface,
        reader: ReceiptReader,
        intake: TransactionIntakeFlow,
        rate_limiter: RateLimiter,
        identity: Optional[IdentityResolver] = None,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
        today: Callable[[], date] = date.today,
    ):
        super().__init__(rate_limiter, identity, audit_logger)
        self._catalog = catalog
        self._reader = reader
        self._intake = intake
        self._app_settings = app_settings or AppSettings()
        self._today = today

    async def _scan(
        self,
        user_id: str,
        image: Any,
        save: bool,
        transaction_type: Any,
        correlation_id: UUID,
    ) -> FlowResult:
        try:
            kind = check_transaction_type(transaction_type)
        except PydanticCustomError as e:
            return _single_error("type", e.message(), e.type)

        try:
            receipt_image = decode_receipt_image(
                image,
                max_bytes=self._app_settings.max_upload_size_bytes,
                allowed_formats=self._app_settings.supported_formats_list,
            )
        except ImageRejectedError as e:
            return _single_error("image", str(e), "image_invalid")

        categories = await self._catalog.list_categories(user_id)
        payment_sources = await self._catalog.list_payment_sources(user_id)
        if not categories or not payment_sources:
            return FlowResult.failure(OutcomeStatus.SETUP_REQUIRED, SETUP_REQUIRED)

        today = self._today()
        try:
            decoded = await self._reader.read(receipt_image, categories, payment_sources, today)
        except AIResponseError as e:
            # Empty or blocked reply: nothing to read, same as an unparseable one
            decoded = DecodeResult.failure(f"unusable reply: {e}")
        except AIServiceError as e:
            return await self._ai_failure(e, user_id, correlation_id)

        if not decoded.ok:
            await self._audit(AuditEventBuilder.extraction_failed(
                user_id=user_id,
                reason=decoded.reason or "unknown",
                correlation_id=correlation_id,
            ))
            return FlowResult.failure(OutcomeStatus.EXTRACTION_FAILED, EXTRACTION_FAILED)

        payload, substituted = coerce_extraction(
            decoded.data, categories, payment_sources, today
        )
        result = validate_record(ReceiptDraft, payload)
        if not result.is_valid:
            return await self._validation_failed(user_id, "receipt", result.errors, correlation_id)

        draft: ReceiptDraft = result.data
        await self._audit(AuditEventBuilder.receipt_extracted(
            user_id=user_id,
            substituted=substituted,
            correlation_id=correlation_id,
        ))

        if not save:
            return FlowResult.success(draft)

        return await self._intake.create_for_user(
            user_id,
            draft.to_create_payload(kind, on=today),
            correlation_id,
        )

    async def scan(
        self,
        credential: Optional[str],
        image: Any,
        save: bool = False,
        transaction_type: Any = TransactionType.EXPENSE.value,
    ) -> FlowResult:
        correlation_id = create_correlation_id()
        user_id = await self._authenticate(credential, "receipt", correlation_id)
        if user_id is None:
            return FlowResult.failure(OutcomeStatus.UNAUTHENTICATED, UNAUTHORIZED)

        limited = await self._enforce_limit(EndpointClass.RECEIPT, user_id, correlation_id)
        if limited:
            return limited

        return await self._guarded(
            lambda: self._scan(user_id, image, save, transaction_type, correlation_id),
            user_id,
            correlation_id,
        )


class ChatFlow(_RateLimitedFlow):
    """
    Orchestrates one assistant turn.

    Flow:
    1. Identity, then the chat rate limit
    2. Validate the conversation       -> VALIDATION_FAILED
    3. Add the user's financial context (unless the client sent one)
    4. Chat call with transport retry  -> RATE_LIMITED / UPSTREAM_FAILURE
    """

    def __init__(
        self,
        assistant: SpendingAssistant,
        rate_limiter: RateLimiter,
        identity: Optional[IdentityResolver] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(rate_limiter, identity, audit_logger)
        self._assistant = assistant

    async def _chat(self, user_id: str, messages: Any, correlation_id: UUID) -> FlowResult:
        result = parse_messages(messages)
        if not result.is_valid:
            await self._audit(AuditEventBuilder.validation_failed(
                user_id=user_id,
                shape="chat",
                errors=[error.model_dump() for error in result.errors],
                correlation_id=correlation_id,
            ))
            return FlowResult.failure(
                OutcomeStatus.VALIDATION_FAILED,
                MESSAGES_REQUIRED,
                errors=result.errors,
            )

        try:
            reply = await self._assistant.reply(user_id, result.data)
        except AIServiceError as e:
            return await self._ai_failure(e, user_id, correlation_id)

        await self._audit(AuditEventBuilder.chat_completed(
            user_id=user_id,
            message_count=len(result.data),
            correlation_id=correlation_id,
        ))
        return FlowResult.success({"content": reply})

    async def chat(self, credential: Optional[str], messages: Any) -> FlowResult:
        correlation_id = create_correlation_id()
        user_id = await self._authenticate(credential, "ai-chat", correlation_id)
        if user_id is None:
            return FlowResult.failure(OutcomeStatus.UNAUTHENTICATED, UNAUTHORIZED)

        limited = await self._enforce_limit(EndpointClass.AI_CHAT, user_id, correlation_id)
        if limited:
            return limited

        return await self._guarded(
            lambda: self._chat(user_id, messages, correlation_id),
            user_id,
            correlation_id,
        )


# =============================================================================
# WIRING
# =============================================================================

class AppComponents(NamedTuple):
    intake: TransactionIntakeFlow
    receipts: ReceiptScanFlow
    chat: ChatFlow
    rate_limiter: RateLimiter
    sheets_client: Optional[GoogleSheetsClient]
    storage_backend: str


def create_app_components(
    use_storage: bool = True,
    settings: Optional[Settings] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use Google Sheets storage.
                    Falls back to in-memory storage when False or
                    when Sheets is not configured.
        settings: Root settings (defaults to get_settings())
    """
    settings = settings or get_settings()
    app_settings = settings.app

    sheets_client = None
    audit_logger = AuditLogger()  # Local-only logging

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
        except ValidationError as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))

    if sheets_client is not None:
        transactions = GoogleSheetsTransactionStorage(sheets_client)
        catalog = GoogleSheetsCatalogStorage(sheets_client)
        audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        storage_backend = "google_sheets"
    else:
        transactions = InMemoryTransactionStorage()
        catalog = InMemoryCatalogStorage()
        storage_backend = "memory"

    identity = IdentityResolver()
    gemini = GeminiClient()
    rate_limiter = RateLimiter(fail_open=app_settings.rate_limit_fail_open)

    intake = TransactionIntakeFlow(
        transactions=transactions,
        catalog=catalog,
        identity=identity,
        audit_logger=audit_logger,
    )
    receipts = ReceiptScanFlow(
        catalog=catalog,
        reader=ReceiptReader(gemini),
        intake=intake,
        rate_limiter=rate_limiter,
        identity=identity,
        audit_logger=audit_logger,
        app_settings=app_settings,
    )
    chat = ChatFlow(
        assistant=SpendingAssistant(
            gemini,
            FinancialSummaryBuilder(transactions, catalog),
            currency=app_settings.display_currency,
        ),
        rate_limiter=rate_limiter,
        identity=identity,
        audit_logger=audit_logger,
    )

    return AppComponents(
        intake=intake,
        receipts=receipts,
        chat=chat,
        rate_limiter=rate_limiter,
        sheets_client=sheets_client,
        storage_backend=storage_backend,
    )
