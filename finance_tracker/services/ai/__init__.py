"""AI backend package (Gemini)."""

from finance_tracker.services.ai.gemini import (
    AIAuthenticationError,
    AIRateLimitedError,
    AIResponseError,
    AIServiceError,
    GeminiClient,
)
from finance_tracker.services.ai.decoder import DecodeResult, decode_json_object

__all__ = [
    "AIAuthenticationError",
    "AIRateLimitedError",
    "AIResponseError",
    "AIServiceError",
    "GeminiClient",
    "DecodeResult",
    "decode_json_object",
]
