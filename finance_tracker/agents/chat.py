"""
Spending Assistant

CRITICAL BOUNDARIES:
- The assistant answers from the financial summary we compute, not
  from its own knowledge
- It only ever sees the calling user's transactions
- It never writes anything

A client may send its own system message (the web client can build one
in the browser). When it does not, we build the context server-side.
"""

from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError

from finance_tracker.models.chat import ChatMessage, ChatRole
from finance_tracker.models.transaction import FieldError, ValidationResult
from finance_tracker.queries.summary import FinancialSummaryBuilder, render_system_prompt
from finance_tracker.services.ai import GeminiClient


MESSAGES_REQUIRED = "Invalid request. Messages array is required."

_MESSAGES = TypeAdapter(list[ChatMessage])


def parse_messages(raw: Any) -> ValidationResult:
    """Validate the conversation sent by the client."""
    if not isinstance(raw, list) or not raw:
        return ValidationResult(
            is_valid=False,
            errors=[FieldError(field="messages", message=MESSAGES_REQUIRED, issue_type="missing")],
        )

    try:
        messages = _MESSAGES.validate_python(raw)
    except ValidationError as exc:
        return ValidationResult(
            is_valid=False,
            errors=[
                FieldError(
                    field=".".join(["messages", *(str(p) for p in error["loc"])]),
                    message=error["msg"],
                    issue_type=error["type"],
                )
                for error in exc.errors()
            ],
        )

    return ValidationResult(is_valid=True, data=messages)


class SpendingAssistant:
    """Adds the user's financial context to a conversation and asks the model."""

    def __init__(
        self,
        client: GeminiClient,
        summary_builder: Optional[FinancialSummaryBuilder] = None,
        currency: str = "USD",
    ):
        self._client = client
        self._summary_builder = summary_builder
        self._currency = currency

    async def with_context(self, user_id: str, messages: list[ChatMessage]) -> list[ChatMessage]:
        """Prepend a system message built from storage, unless one is present."""
        if self._summary_builder is None:
            return messages
        if any(m.role == ChatRole.SYSTEM for m in messages):
            return messages

        summary = await self._summary_builder.build(user_id)
        context = ChatMessage(
            role=ChatRole.SYSTEM,
            content=render_system_prompt(summary, self._currency),
        )
        return [context, *messages]

    async def reply(self, user_id: str, messages: list[ChatMessage]) -> str:
        """
        Raises:
            StorageError: If the context could not be loaded
            AIServiceError: If the chat call failed
        """
        conversation = await self.with_context(user_id, messages)
        return await self._client.chat(conversation)
