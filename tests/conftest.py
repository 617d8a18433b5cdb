"""
Shared fixtures.

No test talks to Google, Gemini or the identity provider: storage is
in-memory, the Gemini model is a scripted fake and tokens are signed
locally with a test secret.
"""

import base64
from datetime import date, datetime, timedelta, timezone
from io import BytesIO
from typing import Any, Optional
from uuid import uuid4

import pytest
from jose import jwt
from PIL import Image
from tenacity import wait_none

from finance_tracker.agents import ReceiptReader, SpendingAssistant
from finance_tracker.audit import AuditLogger
from finance_tracker.config import AppSettings, AuthSettings, GeminiSettings
from finance_tracker.models.transaction import Category, PaymentSource
from finance_tracker.orchestrator import (
    ChatFlow,
    ReceiptScanFlow,
    TransactionIntakeFlow,
)
from finance_tracker.queries import FinancialSummaryBuilder
from finance_tracker.ratelimit import RateLimiter
from finance_tracker.services.ai import GeminiClient
from finance_tracker.services.auth import IdentityResolver
from finance_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryCatalogStorage,
    InMemoryTransactionStorage,
)


TEST_SECRET = "test-secret-with-enough-length-for-hs256"
TODAY = date(2024, 6, 15)


def make_token(
    user_id: str,
    secret: str = TEST_SECRET,
    audience: str = "authenticated",
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    claims = {
        "sub": user_id,
        "aud": audience,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def png_base64(size: tuple[int, int] = (40, 60)) -> str:
    buffer = BytesIO()
    Image.new("RGB", size, color=(255, 255, 255)).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()


# =============================================================================
# FAKES
# =============================================================================

class FakeResponse:
    def __init__(self, text: Optional[str]):
        self._text = text

    @property
    def text(self) -> str:
        if self._text is None:
            raise ValueError("The response has no parts")
        return self._text


class FakeModel:
    """
    Scripted stand-in for genai.GenerativeModel.

    Each script entry is either reply text (str / None for a blocked
    reply) or an exception instance to raise.
    """

    def __init__(self):
        self.script: list[Any] = []
        self.calls: list[Any] = []
        self.system_instructions: list[Optional[str]] = []

    def reply_with(self, *entries: Any) -> None:
        self.script.extend(entries)

    async def generate_content_async(self, contents: Any) -> FakeResponse:
        self.calls.append(contents)
        entry = self.script.pop(0) if self.script else "ok"
        if isinstance(entry, Exception):
            raise entry
        return FakeResponse(entry)


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def user_id() -> str:
    return str(uuid4())


@pytest.fixture
def other_user_id() -> str:
    return str(uuid4())


@pytest.fixture
def token(user_id) -> str:
    return make_token(user_id)


@pytest.fixture
def other_token(other_user_id) -> str:
    return make_token(other_user_id)


@pytest.fixture
def identity() -> IdentityResolver:
    return IdentityResolver(AuthSettings(jwt_secret=TEST_SECRET))


@pytest.fixture
def transactions() -> InMemoryTransactionStorage:
    return InMemoryTransactionStorage()


@pytest.fixture
def catalog() -> InMemoryCatalogStorage:
    return InMemoryCatalogStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
async def category(catalog, user_id) -> Category:
    return await catalog.save_category(Category(user_id=user_id, name="Groceries"))


@pytest.fixture
async def second_category(catalog, user_id) -> Category:
    return await catalog.save_category(Category(user_id=user_id, name="Dining"))


@pytest.fixture
async def payment_source(catalog, user_id) -> PaymentSource:
    return await catalog.save_payment_source(PaymentSource(user_id=user_id, name="Cash"))


@pytest.fixture
async def other_category(catalog, other_user_id) -> Category:
    return await catalog.save_category(Category(user_id=other_user_id, name="Groceries"))


@pytest.fixture
def fake_model() -> FakeModel:
    return FakeModel()


@pytest.fixture
def gemini(fake_model) -> GeminiClient:
    def factory(model_name: str, system_instruction: Optional[str]) -> FakeModel:
        fake_model.system_instructions.append(system_instruction)
        return fake_model

    return GeminiClient(
        settings=GeminiSettings(api_key="test-key"),
        model_factory=factory,
        wait=wait_none(),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rate_limiter(clock) -> RateLimiter:
    return RateLimiter(clock=clock)


@pytest.fixture
def intake(transactions, catalog, identity, audit_logger) -> TransactionIntakeFlow:
    return TransactionIntakeFlow(
        transactions=transactions,
        catalog=catalog,
        identity=identity,
        audit_logger=audit_logger,
    )


@pytest.fixture
def receipts(catalog, gemini, intake, rate_limiter, identity, audit_logger) -> ReceiptScanFlow:
    return ReceiptScanFlow(
        catalog=catalog,
        reader=ReceiptReader(gemini),
        intake=intake,
        rate_limiter=rate_limiter,
        identity=identity,
        audit_logger=audit_logger,
        app_settings=AppSettings(),
        today=lambda: TODAY,
    )


@pytest.fixture
def chat(gemini, transactions, catalog, rate_limiter, identity, audit_logger) -> ChatFlow:
    return ChatFlow(
        assistant=SpendingAssistant(gemini, FinancialSummaryBuilder(transactions, catalog)),
        rate_limiter=rate_limiter,
        identity=identity,
        audit_logger=audit_logger,
    )


@pytest.fixture
def valid_payload(category, payment_source) -> dict:
    return {
        "amount": 42.5,
        "type": "expense",
        "date": "2024-06-01",
        "category": category.id,
        "payment_source": payment_source.id,
        "notes": "Weekly shop",
    }


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def receipt_png() -> str:
    return png_base64()
