from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ConversationTurn(BaseModel):
    """One prior message in the caller-supplied conversation window."""

    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Request body for ``POST /``.

    Wire names are camelCase; attribute names are snake_case.
    """

    model_config = ConfigDict(populate_by_name=True)

    question: str | None = None
    conversation_history: list[ConversationTurn] = Field(default_factory=list, alias="conversationHistory")
    domain_context: str | None = Field(default=None, alias="domainContext")
    language: Literal["en", "hi"] = "en"


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    answer: str
    tokens_used: int = Field(default=0, ge=0, alias="tokensUsed")
    sources: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
