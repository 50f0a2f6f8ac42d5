from __future__ import annotations

import httpx
import structlog

from ai_chat.exceptions import ProviderError
from ai_chat.models import ProviderReply

logger = structlog.get_logger()

_MAX_ERROR_BODY_CHARS = 2000


def _extract_text(data: dict) -> str:
    """Return the first text block of a Messages API response, or ``""``."""
    content = data.get("content")
    if not isinstance(content, list):
        return ""
    for block in content:
        if isinstance(block, dict) and isinstance(block.get("text"), str):
            if block.get("type", "text") == "text":
                return block["text"]
    return ""


def _extract_token_count(usage: object, field: str) -> int | None:
    if not isinstance(usage, dict):
        return None
    value = usage.get(field)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


class AnthropicProvider:
    """Client for the Anthropic Messages API (``POST /v1/messages``)."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str,
        api_url: str = "https://api.anthropic.com/v1/messages",
        api_version: str = "2023-06-01",
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._model = model
        self._api_url = api_url
        self._api_version = api_version

    @property
    def model(self) -> str:
        return self._model

    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> ProviderReply:
        """Send one non-streaming generation request.

        Args:
            system_prompt: System instruction for the model.
            messages: Alternating user/assistant turns ending with a user turn.
            max_tokens: Output token ceiling.

        Returns:
            ProviderReply with the first text block and the reported token counts.

        Raises:
            ProviderError: If the provider answers with a non-2xx status or a
                body that is not a JSON object.
            httpx.HTTPError: On transport failures and timeouts.
        """
        resp = await self._client.post(
            self._api_url,
            headers={
                "content-type": "application/json",
                "x-api-key": self._api_key,
                "anthropic-version": self._api_version,
            },
            json={
                "model": self._model,
                "max_tokens": max_tokens,
                "system": system_prompt,
                "messages": messages,
            },
        )

        if not resp.is_success:
            raise ProviderError(
                f"Provider returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text[:_MAX_ERROR_BODY_CHARS],
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError(
                "Provider returned a non-JSON body",
                status_code=resp.status_code,
                body=resp.text[:_MAX_ERROR_BODY_CHARS],
            ) from exc
        if not isinstance(data, dict):
            raise ProviderError("Provider returned an unexpected payload", status_code=resp.status_code)

        usage = data.get("usage")
        return ProviderReply(
            text=_extract_text(data),
            input_tokens=_extract_token_count(usage, "input_tokens"),
            output_tokens=_extract_token_count(usage, "output_tokens"),
        )
