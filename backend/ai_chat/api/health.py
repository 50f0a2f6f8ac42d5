from __future__ import annotations

from fastapi import APIRouter

from ai_chat.config import settings
from ai_chat.schemas.health import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Report whether the service has the credentials it needs. Makes no outbound calls."""
    llm_configured = settings.llm_configured
    supabase_configured = settings.supabase_configured
    return HealthResponse(
        status="healthy" if llm_configured and supabase_configured else "degraded",
        version=settings.APP_VERSION,
        llm_configured=llm_configured,
        supabase_configured=supabase_configured,
    )
