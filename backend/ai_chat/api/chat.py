from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ai_chat.clients import get_chat_pipeline
from ai_chat.exceptions import Failure
from ai_chat.pipelines.chat import ChatPipeline
from ai_chat.schemas.chat import ChatResponse, ErrorResponse

logger = structlog.get_logger()
router = APIRouter(tags=["chat"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def json_response(data: dict, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=data, status_code=status_code, headers=CORS_HEADERS)


def error_response(failure: Failure) -> JSONResponse:
    return json_response(ErrorResponse(error=failure.message).model_dump(), status_code=failure.status_code)


@router.options("/")
async def chat_preflight() -> PlainTextResponse:
    """Acknowledge a CORS preflight request."""
    return PlainTextResponse("ok", headers=CORS_HEADERS)


@router.post(
    "/",
    response_model=ChatResponse,
    responses={code: {"model": ErrorResponse} for code in (400, 401, 429, 500, 502, 503)},
)
async def chat(request: Request, pipeline: ChatPipeline = Depends(get_chat_pipeline)) -> JSONResponse:
    """Answer a question with retrieved knowledge context.

    The body is read raw so authentication and the quota check run before it
    is parsed.

    Args:
        request: The incoming request carrying the Authorization header and JSON body.
        pipeline: The chat pipeline, injected by FastAPI.

    Returns:
        ``{answer, tokensUsed, sources}`` on success, ``{error}`` otherwise.
    """
    body = await request.body()
    outcome = await pipeline.handle(request.headers.get("Authorization"), body)
    if isinstance(outcome, Failure):
        return error_response(outcome)
    return json_response(outcome.response.model_dump(by_alias=True))
