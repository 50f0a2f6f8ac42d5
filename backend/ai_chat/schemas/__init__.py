from ai_chat.schemas.chat import ChatRequest, ChatResponse, ConversationTurn, ErrorResponse
from ai_chat.schemas.health import HealthResponse

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ConversationTurn",
    "ErrorResponse",
    "HealthResponse",
]
