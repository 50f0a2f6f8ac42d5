from __future__ import annotations

from fastapi import APIRouter

from ai_chat.api.chat import router as chat_router
from ai_chat.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(chat_router)
