"""AI agents: the receipt reader and the spending assistant."""

from finance_tracker.agents.chat import MESSAGES_REQUIRED, SpendingAssistant, parse_messages
from finance_tracker.agents.receipt import (
    ReceiptReader,
    build_receipt_prompt,
    coerce_extraction,
)

__all__ = [
    "MESSAGES_REQUIRED",
    "SpendingAssistant",
    "parse_messages",
    "ReceiptReader",
    "build_receipt_prompt",
    "coerce_extraction",
]
