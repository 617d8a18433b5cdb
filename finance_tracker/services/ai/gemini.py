"""
Gemini Client

Thin wrapper over google-generativeai for the two AI calls we make:

1. CHAT: the spending assistant. Retried on transient failures.
2. VISION: reading one receipt image. Called exactly once per request.

DESIGN DECISION: Every google.api_core error is translated into our own
AIServiceError hierarchy here, so flows never import google libraries and
never see upstream response bodies.

RETRY POLICY (chat only):
- 5xx server errors, connection errors and timeouts: retried with
  exponential backoff, capped at chat_max_attempts.
- 429 from the provider: NEVER retried. The caller is told to slow down.
- 401/403 from the provider: never retried - a bad key will not fix itself.
"""

from typing import Any, Callable, Optional

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from finance_tracker.config import GeminiSettings, get_settings
from finance_tracker.models.chat import ChatMessage, ChatRole


logger = structlog.get_logger(__name__)


class AIServiceError(Exception):
    """Base exception for AI backend errors."""
    pass


class AIRateLimitedError(AIServiceError):
    """The provider answered 429."""
    pass


class AIAuthenticationError(AIServiceError):
    """The provider rejected our credentials (401/403)."""
    pass


class AIResponseError(AIServiceError):
    """The provider answered, but with no usable text."""
    pass


# Errors worth another attempt
TRANSIENT_ERRORS = (
    google_exceptions.ServerError,
    google_exceptions.RetryError,
    ConnectionError,
    TimeoutError,
)

ModelFactory = Callable[[str, Optional[str]], Any]


def _translate(error: Exception) -> AIServiceError:
    """Map a provider exception onto our hierarchy."""
    if isinstance(error, AIServiceError):
        return error
    if isinstance(error, google_exceptions.TooManyRequests):
        return AIRateLimitedError(str(error))
    if isinstance(error, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)):
        return AIAuthenticationError(str(error))
    return AIServiceError(f"{type(error).__name__}: {error}")


def _reply_text(response: Any) -> str:
    """
    Extract text from a response.

    response.text raises ValueError when the candidate was blocked or
    carries no parts.
    """
    try:
        text = response.text
    except ValueError as e:
        raise AIResponseError(f"Response had no text: {e}") from e

    if not text or not text.strip():
        raise AIResponseError("Response text was empty")
    return text.strip()


def to_gemini_contents(messages: list[ChatMessage]) -> tuple[Optional[str], list[dict]]:
    """
    Split a conversation into Gemini's system instruction and contents.

    System turns become the system instruction; assistant turns use
    Gemini's "model" role.
    """
    system_parts = [m.content for m in messages if m.role == ChatRole.SYSTEM]
    contents = [
        {
            "role": "model" if m.role == ChatRole.ASSISTANT else "user",
            "parts": [m.content],
        }
        for m in messages
        if m.role != ChatRole.SYSTEM
    ]
    system_instruction = "\n\n".join(system_parts) if system_parts else None
    return system_instruction, contents


class GeminiClient:
    """
    Gemini access for the chat and receipt flows.

    The SDK is configured lazily on first use so the application can
    start (and report itself unconfigured) without an API key.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model_factory: Optional[ModelFactory] = None,
        wait: Optional[wait_base] = None,
    ):
        self._settings = settings
        self._model_factory = model_factory
        self._wait = wait or wait_exponential(multiplier=1, min=2, max=10)
        self._configured = False

    @property
    def settings(self) -> GeminiSettings:
        if self._settings is None:
            self._settings = get_settings().gemini
        return self._settings

    def _model(self, model_name: str, system_instruction: Optional[str] = None) -> Any:
        if self._model_factory is not None:
            return self._model_factory(model_name, system_instruction)

        if not self._configured:
            genai.configure(api_key=self.settings.api_key)
            self._configured = True

        return genai.GenerativeModel(
            model_name=model_name,
            system_instruction=system_instruction,
            generation_config={
                "temperature": self.settings.temperature,
                "max_output_tokens": self.settings.max_tokens,
            },
        )

    async def chat(self, messages: list[ChatMessage]) -> str:
        """
        Send a conversation and return the assistant's reply.

        Raises:
            AIRateLimitedError: Provider answered 429 (not retried)
            AIAuthenticationError: Provider rejected our credentials
            AIResponseError: Empty or blocked reply
            AIServiceError: Anything else, after retries ran out
        """
        system_instruction, contents = to_gemini_contents(messages)

        try:
            model = self._model(self.settings.chat_model_name, system_instruction)

            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                stop=stop_after_attempt(self.settings.chat_max_attempts),
                wait=self._wait,
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "gemini_chat_retry",
                            attempt=attempt.retry_state.attempt_number,
                        )
                    response = await model.generate_content_async(contents)
        except Exception as e:
            raise _translate(e) from e

        return _reply_text(response)

    async def read_image(self, prompt: str, image_bytes: bytes, mime_type: str) -> str:
        """
        Ask the vision model about one image. Single attempt.

        Raises:
            AIRateLimitedError, AIAuthenticationError, AIResponseError,
            AIServiceError: as for chat()
        """
        try:
            model = self._model(self.settings.vision_model_name)
            response = await model.generate_content_async(
                [prompt, {"mime_type": mime_type, "data": image_bytes}]
            )
        except Exception as e:
            raise _translate(e) from e

        return _reply_text(response)
