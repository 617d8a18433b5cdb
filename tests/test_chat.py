"""Tests for the Gemini client, the spending assistant and the chat flow."""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from google.api_core import exceptions as google_exceptions

from finance_tracker.agents import MESSAGES_REQUIRED, parse_messages
from finance_tracker.models.chat import ChatMessage, ChatRole
from finance_tracker.models.outcome import OutcomeStatus
from finance_tracker.models.transaction import Transaction, TransactionType
from finance_tracker.orchestrator import AI_AUTH_FAILED, AI_BUSY, AI_UNAVAILABLE
from finance_tracker.queries import format_currency, render_system_prompt, summarize
from finance_tracker.queries.summary import month_key, week_key
from finance_tracker.services.ai import (
    AIAuthenticationError,
    AIRateLimitedError,
    AIResponseError,
    AIServiceError,
)
from finance_tracker.services.ai.gemini import to_gemini_contents


def _hello() -> list[dict]:
    return [{"role": "user", "content": "How much did I spend?"}]


def _transaction(amount, day, kind=TransactionType.EXPENSE, category="cat-1", notes=None):
    return Transaction(
        user_id="u",
        amount=Decimal(str(amount)),
        type=kind,
        date=day,
        category=category,
        payment_source="ps-1",
        notes=notes,
    )


class TestGeminiClient:
    """Tests for the chat transport and error mapping."""

    def test_contents_mapping(self):
        """Test system turns become the instruction and assistant maps to model."""
        instruction, contents = to_gemini_contents([
            ChatMessage(role="system", content="context"),
            ChatMessage(role="user", content="hi"),
            ChatMessage(role="assistant", content="hello"),
        ])
        assert instruction == "context"
        assert contents == [
            {"role": "user", "parts": ["hi"]},
            {"role": "model", "parts": ["hello"]},
        ]

    async def test_reply_text(self, gemini, fake_model):
        """Test the reply is returned trimmed."""
        fake_model.reply_with("  You spent $10.  ")
        reply = await gemini.chat([ChatMessage(role="user", content="hi")])
        assert reply == "You spent $10."

    async def test_retries_server_errors(self, gemini, fake_model):
        """Test transient 5xx errors are retried."""
        fake_model.reply_with(google_exceptions.ServiceUnavailable("down"), "ok now")
        reply = await gemini.chat([ChatMessage(role="user", content="hi")])
        assert reply == "ok now"
        assert len(fake_model.calls) == 2

    async def test_retries_give_up(self, gemini, fake_model):
        """Test retries stop after chat_max_attempts."""
        fake_model.reply_with(*[google_exceptions.InternalServerError("boom")] * 5)
        with pytest.raises(AIServiceError):
            await gemini.chat([ChatMessage(role="user", content="hi")])
        assert len(fake_model.calls) == 3

    async def test_connection_errors_retried(self, gemini, fake_model):
        """Test network errors count as transient."""
        fake_model.reply_with(ConnectionError("reset"), TimeoutError(), "fine")
        assert await gemini.chat([ChatMessage(role="user", content="hi")]) == "fine"

    async def test_429_not_retried(self, gemini, fake_model):
        """Test provider rate limiting is surfaced immediately."""
        fake_model.reply_with(google_exceptions.TooManyRequests("slow down"))
        with pytest.raises(AIRateLimitedError):
            await gemini.chat([ChatMessage(role="user", content="hi")])
        assert len(fake_model.calls) == 1

    async def test_auth_not_retried(self, gemini, fake_model):
        """Test a rejected key is surfaced immediately."""
        fake_model.reply_with(google_exceptions.Unauthenticated("bad key"))
        with pytest.raises(AIAuthenticationError):
            await gemini.chat([ChatMessage(role="user", content="hi")])
        assert len(fake_model.calls) == 1

    @pytest.mark.parametrize("text", ["", "   ", None])
    async def test_empty_reply(self, gemini, fake_model, text):
        """Test empty and blocked replies are response errors."""
        fake_model.reply_with(text)
        with pytest.raises(AIResponseError):
            await gemini.chat([ChatMessage(role="user", content="hi")])


class TestMessages:
    """Tests for conversation validation."""

    def test_valid(self):
        """Test a well-formed conversation."""
        result = parse_messages(_hello())
        assert result.is_valid
        assert result.data[0].role == ChatRole.USER

    @pytest.mark.parametrize("raw", [None, [], "hello", {"role": "user"}])
    def test_missing(self, raw):
        """Test a missing or empty messages array."""
        result = parse_messages(raw)
        assert not result.is_valid
        assert result.errors[0].message == MESSAGES_REQUIRED

    def test_bad_role(self):
        """Test errors point at the offending message."""
        result = parse_messages([{"role": "user", "content": "a"}, {"role": "robot", "content": "b"}])
        assert result.error_fields == ["messages.1.role"]


class TestSummary:
    """Tests for the assistant's financial context."""

    def test_period_keys(self):
        """Test week and month labels."""
        assert week_key(date(2024, 2, 14)) == "2024-W07"
        assert week_key(date(2024, 12, 30)) == "2025-W01"
        assert month_key(date(2024, 3, 5)) == "2024-03 (March)"

    def test_totals_and_top_categories(self):
        """Test totals, net and the largest spending categories."""
        summary = summarize(
            [
                _transaction(3000, date(2024, 3, 1), kind=TransactionType.INCOME),
                _transaction(100, date(2024, 3, 2), category="cat-1"),
                _transaction(250.5, date(2024, 3, 3), category="cat-2"),
                _transaction(50, date(2024, 4, 1), category="cat-1"),
            ],
            {"cat-1": "Groceries", "cat-2": "Rent"},
        )
        assert summary.total_income == Decimal("3000")
        assert summary.total_expenses == Decimal("400.5")
        assert summary.net == Decimal("2599.5")
        assert summary.top_categories == [("Rent", Decimal("250.5")), ("Groceries", Decimal("150"))]
        assert summary.recent[0].date == date(2024, 4, 1)
        assert [p.label for p in summary.by_month] == ["2024-04 (April)", "2024-03 (March)"]
        assert summary.by_month[1].income == Decimal("3000")
        assert summary.by_year[0].count == 4

    def test_prompt_renders_figures(self):
        """Test the prompt carries formatted totals and categories."""
        summary = summarize(
            [_transaction(1234.5, date(2024, 3, 2), notes="Big shop")],
            {"cat-1": "Groceries"},
        )
        prompt = render_system_prompt(summary, "USD")
        assert "Total Expenses: $1,234.50" in prompt
        assert "- Groceries: $1,234.50" in prompt
        assert "Big shop" in prompt
        assert "never invent" in prompt

    def test_prompt_for_new_user(self):
        """Test the fallbacks when there is no data."""
        prompt = render_system_prompt(summarize([], {}), "EUR")
        assert "Total Income: €0.00" in prompt
        assert "No expenses recorded yet" in prompt
        assert "No weekly data available" in prompt

    def test_detail_limit(self):
        """Test long weeks are truncated with a count of the rest."""
        day = date(2024, 3, 4)
        summary = summarize([_transaction(1, day) for _ in range(12)], {})
        prompt = render_system_prompt(summary, "USD")
        assert "... and 2 more transactions" in prompt


class TestCurrency:
    """Tests for display formatting."""

    @pytest.mark.parametrize("amount,code,expected", [
        (Decimal("1234.5"), "USD", "$1,234.50"),
        (Decimal("0.005"), "USD", "$0.01"),
        (Decimal("-20"), "GBP", "-£20.00"),
        (Decimal("1234.56"), "JPY", "¥1,235"),
        (Decimal("1234.5"), "CHF", "1,234.50 CHF"),
        (10, "xyz", "$10.00"),
        (Decimal("99.9"), "eur", "€99.90"),
    ])
    def test_format(self, amount, code, expected):
        """Test symbols, decimals and fallbacks."""
        assert format_currency(amount, code) == expected


class TestChatFlow:
    """Tests for the end-to-end chat flow."""

    async def test_reply(self, chat, token, fake_model, audit_storage):
        """Test a conversation gets the model's reply."""
        fake_model.reply_with("You spent nothing yet.")
        result = await chat.chat(token, _hello())

        assert result.ok
        assert result.data == {"content": "You spent nothing yet."}
        assert fake_model.calls[0] == [{"role": "user", "parts": ["How much did I spend?"]}]

    async def test_context_built_from_own_data(
        self, chat, intake, token, other_token, valid_payload, fake_model, category
    ):
        """Test the system instruction summarizes only the caller's data."""
        await intake.create_transaction(token, {**valid_payload, "amount": 1234.5})
        other_category = (await intake.create_category(other_token, {"name": "Yachts"})).data
        other_source = (await intake.create_payment_source(other_token, {"name": "Gold"})).data
        await intake.create_transaction(other_token, {
            **valid_payload,
            "amount": 999999,
            "category": other_category.id,
            "payment_source": other_source.id,
        })

        await chat.chat(token, _hello())

        instruction = fake_model.system_instructions[-1]
        assert "- Groceries: $1,234.50" in instruction
        assert "Yachts" not in instruction
        assert "999,999" not in instruction

    async def test_client_system_message_kept(self, chat, token, fake_model):
        """Test a client-supplied system message is not replaced."""
        await chat.chat(token, [
            {"role": "system", "content": "Client context"},
            {"role": "user", "content": "hi"},
        ])
        assert fake_model.system_instructions[-1] == "Client context"

    async def test_invalid_messages(self, chat, token, fake_model):
        """Test a missing messages array."""
        result = await chat.chat(token, None)
        assert result.status == OutcomeStatus.VALIDATION_FAILED
        assert result.message == MESSAGES_REQUIRED
        assert fake_model.calls == []

    async def test_unauthenticated(self, chat, fake_model):
        """Test chat needs a token."""
        result = await chat.chat(None, _hello())
        assert result.status == OutcomeStatus.UNAUTHENTICATED
        assert fake_model.calls == []

    async def test_transient_error_recovered(self, chat, token, fake_model):
        """Test a 503 followed by a reply succeeds."""
        fake_model.reply_with(google_exceptions.ServiceUnavailable("down"), "Back again")
        result = await chat.chat(token, _hello())
        assert result.ok
        assert result.data["content"] == "Back again"

    async def test_provider_busy(self, chat, token, fake_model):
        """Test a 429 is reported as busy without retrying."""
        fake_model.reply_with(google_exceptions.TooManyRequests("quota"))
        result = await chat.chat(token, _hello())
        assert result.status == OutcomeStatus.RATE_LIMITED
        assert result.message == AI_BUSY
        assert len(fake_model.calls) == 1

    async def test_provider_auth(self, chat, token, fake_model):
        """Test a rejected key."""
        fake_model.reply_with(google_exceptions.PermissionDenied("no"))
        result = await chat.chat(token, _hello())
        assert result.status == OutcomeStatus.UPSTREAM_FAILURE
        assert result.message == AI_AUTH_FAILED

    async def test_empty_reply(self, chat, token, fake_model):
        """Test an empty reply is an upstream failure."""
        fake_model.reply_with("")
        result = await chat.chat(token, _hello())
        assert result.status == OutcomeStatus.UPSTREAM_FAILURE
        assert result.message == AI_UNAVAILABLE

    async def test_eleventh_request_limited(self, chat, token, other_token, fake_model, clock):
        """Test ten chats per minute, then RateLimited until the window resets."""
        start = clock()
        for _ in range(10):
            assert (await chat.chat(token, _hello())).ok
            clock.advance(1)

        limited = await chat.chat(token, _hello())
        assert limited.status == OutcomeStatus.RATE_LIMITED
        assert limited.reset_at == start + timedelta(seconds=60)
        assert "50 seconds" in limited.message
        assert len(fake_model.calls) == 10

        assert (await chat.chat(other_token, _hello())).ok

        clock.advance(50)
        assert (await chat.chat(token, _hello())).ok
