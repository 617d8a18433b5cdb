"""
Model Reply Decoder

Models wrap JSON in markdown fences, add prose around it, or answer with
something that is not JSON at all. decode_json_object() turns a raw reply
into either a dict or a reason - it never raises.
"""

import json
from typing import Any, Optional

from pydantic import BaseModel, Field


class DecodeResult(BaseModel):
    """Outcome of decoding one model reply."""

    ok: bool
    data: dict[str, Any] = Field(default_factory=dict)
    reason: Optional[str] = None

    @classmethod
    def success(cls, data: dict[str, Any]) -> "DecodeResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, reason: str) -> "DecodeResult":
        return cls(ok=False, reason=reason)


def _unfence(text: str) -> str:
    """Return the body of the first fenced block, or the text itself."""
    for fence in ("```json", "```"):
        if fence in text:
            body = text.split(fence, 1)[1]
            return body.split("```", 1)[0]
    return text


def decode_json_object(reply: Optional[str]) -> DecodeResult:
    """Decode a reply that should contain exactly one JSON object."""
    if not reply or not reply.strip():
        return DecodeResult.failure("Reply was empty")

    candidate = _unfence(reply).strip()
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        return DecodeResult.failure(f"Reply was not valid JSON: {e.msg}")

    if not isinstance(data, dict):
        return DecodeResult.failure(
            f"Reply was JSON but not an object ({type(data).__name__})"
        )
    return DecodeResult.success(data)
