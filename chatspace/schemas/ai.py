"""Assistant chat schemas."""

from typing import List, Literal, Optional

from pydantic import Field

from chatspace.schemas.common import CamelModel
from chatspace.schemas.message import MessageResponse


class ChatTurn(CamelModel):
    role: Literal["system", "user", "assistant"]
    content: str = Field(min_length=1)


class AIChatRequest(CamelModel):
    """Either a single `prompt` or a full `messages` history."""
    prompt: Optional[str] = None
    messages: Optional[List[ChatTurn]] = None
    model: Optional[str] = Field(None, max_length=100)


class AIChatResponse(CamelModel):
    success: bool = True
    content: str
    user_message: MessageResponse
    ai_message: MessageResponse


class AILimiterUpdate(CamelModel):
    enabled: bool


class AILimiterResponse(CamelModel):
    success: bool = True
    ai_enabled: bool
