from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class UserIdentity:
    """Stable caller identity resolved from a bearer credential."""

    user_id: str


@dataclass(frozen=True)
class UsageEvent:
    """One billable upstream call, appended to the usage log."""

    user_id: str
    timestamp: datetime
    tokens_used: int

    def __post_init__(self) -> None:
        if self.tokens_used < 0:
            raise ValueError("tokens_used must be non-negative")
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")


@dataclass(frozen=True)
class KnowledgeChunk:
    title: str
    content: str


@dataclass(frozen=True)
class ProviderReply:
    """Raw result of one LLM call. Token fields are None when the provider omits them."""

    text: str
    input_tokens: int | None = None
    output_tokens: int | None = None


@dataclass(frozen=True)
class Generation:
    answer: str
    tokens_used: int
