"""Read-side helpers: the assistant's financial context and currency display."""

from finance_tracker.queries.currency import CURRENCIES, format_currency
from finance_tracker.queries.summary import (
    FinancialSummary,
    FinancialSummaryBuilder,
    PeriodTotals,
    render_system_prompt,
    summarize,
)

__all__ = [
    "CURRENCIES",
    "format_currency",
    "FinancialSummary",
    "FinancialSummaryBuilder",
    "PeriodTotals",
    "render_system_prompt",
    "summarize",
]
