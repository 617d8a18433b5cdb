"""
Chat Models

Messages exchanged with the spending assistant. The client sends the whole
conversation on every request; nothing is kept server-side.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """One turn of the conversation."""
    model_config = ConfigDict(extra="ignore")

    role: ChatRole
    content: str = Field(..., min_length=1)
