"""
Financial Context for the Assistant

DESIGN DECISION: The assistant only knows what we tell it. Before a chat
call we compute a deterministic summary of the caller's OWN transactions
and send it as the system message. The model formats and explains these
numbers; it never computes them.

Everything here reads from storage scoped to one user_id.
"""

import calendar
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Callable

from pydantic import BaseModel, Field

from finance_tracker.models.transaction import Transaction, TransactionType
from finance_tracker.queries.currency import format_currency
from finance_tracker.services.storage import (
    CatalogStorageInterface,
    TransactionStorageInterface,
)


WEEKS_SHOWN = 12
MONTHS_SHOWN = 12
DETAILED_WEEKS = 4
DETAILED_MONTHS = 3
WEEK_DETAIL_LIMIT = 10
MONTH_DETAIL_LIMIT = 15
TOP_CATEGORIES = 5
RECENT_TRANSACTIONS = 5


def week_key(day: date) -> str:
    """ISO week label, e.g. 2024-W07."""
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


def month_key(day: date) -> str:
    """Month label, e.g. 2024-03 (March)."""
    return f"{day.year}-{day.month:02d} ({calendar.month_name[day.month]})"


def year_key(day: date) -> str:
    return str(day.year)


class PeriodTotals(BaseModel):
    """Income and expenses within one week, month or year."""

    label: str
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    count: int = 0
    transactions: list[Transaction] = Field(default_factory=list)

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


class FinancialSummary(BaseModel):
    """Everything the assistant is told about the user's money."""

    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    transaction_count: int = 0

    # (category name, total spent), largest first
    top_categories: list[tuple[str, Decimal]] = Field(default_factory=list)
    recent: list[Transaction] = Field(default_factory=list)

    # Newest period first
    by_week: list[PeriodTotals] = Field(default_factory=list)
    by_month: list[PeriodTotals] = Field(default_factory=list)
    by_year: list[PeriodTotals] = Field(default_factory=list)

    category_names: dict[str, str] = Field(default_factory=dict)

    @property
    def net(self) -> Decimal:
        return self.total_income - self.total_expenses


def _group(
    transactions: list[Transaction],
    key: Callable[[date], str],
) -> list[PeriodTotals]:
    periods: dict[str, PeriodTotals] = {}
    for t in transactions:
        label = key(t.date)
        period = periods.setdefault(label, PeriodTotals(label=label))
        if t.type == TransactionType.INCOME:
            period.income += t.amount
        else:
            period.expenses += t.amount
        period.count += 1
        period.transactions.append(t)

    for period in periods.values():
        period.transactions.sort(key=lambda t: t.date, reverse=True)

    # Labels sort chronologically as strings
    return [periods[label] for label in sorted(periods, reverse=True)]


def summarize(
    transactions: list[Transaction],
    category_names: dict[str, str],
) -> FinancialSummary:
    """Build the summary from an already-fetched transaction list."""
    summary = FinancialSummary(
        transaction_count=len(transactions),
        category_names=category_names,
    )

    spent_by_category: dict[str, Decimal] = defaultdict(Decimal)
    for t in transactions:
        if t.type == TransactionType.INCOME:
            summary.total_income += t.amount
        else:
            summary.total_expenses += t.amount
            spent_by_category[category_names.get(t.category, t.category)] += t.amount

    summary.top_categories = sorted(
        spent_by_category.items(), key=lambda item: item[1], reverse=True
    )[:TOP_CATEGORIES]

    newest_first = sorted(transactions, key=lambda t: (t.date, t.created_at), reverse=True)
    summary.recent = newest_first[:RECENT_TRANSACTIONS]
    summary.by_week = _group(newest_first, week_key)
    summary.by_month = _group(newest_first, month_key)
    summary.by_year = _group(newest_first, year_key)
    return summary


class FinancialSummaryBuilder:
    """Loads one user's transactions and catalog and summarizes them."""

    def __init__(
        self,
        transactions: TransactionStorageInterface,
        catalog: CatalogStorageInterface,
    ):
        self._transactions = transactions
        self._catalog = catalog

    async def build(self, user_id: str) -> FinancialSummary:
        transactions = await self._transactions.list_transactions(user_id)
        categories = await self._catalog.list_categories(user_id)
        return summarize(transactions, {c.id: c.name for c in categories})


# =============================================================================
# PROMPT RENDERING
# =============================================================================

def _totals_line(prefix: str, period: PeriodTotals, currency: str) -> str:
    return (
        f"{prefix}{period.label}: Income {format_currency(period.income, currency)}, "
        f"Expenses {format_currency(period.expenses, currency)}, "
        f"Net {format_currency(period.net, currency)} ({period.count} transactions)"
    )


def _detail_block(
    prefix: str,
    period: PeriodTotals,
    limit: int,
    summary: FinancialSummary,
    currency: str,
) -> str:
    lines = [f"{prefix}{period.label}:"]
    for t in period.transactions[:limit]:
        category = summary.category_names.get(t.category, t.category)
        notes = f" - {t.notes}" if t.notes else ""
        lines.append(
            f"  - {t.date.isoformat()}: {format_currency(t.amount, currency)} "
            f"({t.type.value}) - {category}{notes}"
        )
    if period.count > limit:
        lines.append(f"  ... and {period.count - limit} more transactions")
    return "\n".join(lines)


def render_system_prompt(summary: FinancialSummary, currency: str) -> str:
    """The system message sent ahead of the user's conversation."""
    top = "\n".join(
        f"- {name}: {format_currency(amount, currency)}"
        for name, amount in summary.top_categories
    ) or "No expenses recorded yet"

    recent = "\n".join(
        f"- {t.date.isoformat()}: {format_currency(t.amount, currency)} on "
        f"{summary.category_names.get(t.category, t.category)}"
        for t in summary.recent
    ) or "No transactions recorded yet"

    weekly = "\n".join(
        _totals_line("Week ", p, currency) for p in summary.by_week[:WEEKS_SHOWN]
    ) or "No weekly data available"
    monthly = "\n".join(
        _totals_line("", p, currency) for p in summary.by_month[:MONTHS_SHOWN]
    ) or "No monthly data available"
    yearly = "\n".join(
        _totals_line("Year ", p, currency) for p in summary.by_year
    ) or "No yearly data available"

    weekly_details = "\n\n".join(
        _detail_block("Week ", p, WEEK_DETAIL_LIMIT, summary, currency)
        for p in summary.by_week[:DETAILED_WEEKS]
    ) or "No weekly transaction details available"
    monthly_details = "\n\n".join(
        _detail_block("", p, MONTH_DETAIL_LIMIT, summary, currency)
        for p in summary.by_month[:DETAILED_MONTHS]
    ) or "No monthly transaction details available"

    return f"""You're a friendly finance buddy chatting with a friend. Keep responses short (20-30 words) unless they ask for details. Be casual and warm. Use markdown for formatting when helpful.

User's overall finances:
- Total Income: {format_currency(summary.total_income, currency)}
- Total Expenses: {format_currency(summary.total_expenses, currency)}
- Net: {format_currency(summary.net, currency)}

Top spending categories:
{top}

Recent transactions (last {RECENT_TRANSACTIONS}):
{recent}

Transactions by WEEK (last {WEEKS_SHOWN} weeks):
{weekly}

Transactions by MONTH (last {MONTHS_SHOWN} months):
{monthly}

Transactions by YEAR:
{yearly}

Detailed weekly transactions (last {DETAILED_WEEKS} weeks):
{weekly_details}

Detailed monthly transactions (last {DETAILED_MONTHS} months):
{monthly_details}

Use ONLY the data above when answering questions about specific periods, amounts or categories. If the data does not cover the question, say so - never invent transactions or totals."""
