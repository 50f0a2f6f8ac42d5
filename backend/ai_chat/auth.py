from __future__ import annotations

import httpx
import structlog

from ai_chat.backends.base import IdentityProvider
from ai_chat.exceptions import Failure, IdentityRejected, unauthenticated
from ai_chat.models import UserIdentity

logger = structlog.get_logger()

_BEARER_SCHEME = "bearer"


def parse_bearer(auth_header: str | None) -> str | Failure:
    """Extract the token from an ``Authorization: Bearer <token>`` header value.

    Args:
        auth_header: Raw header value, or None when the header is absent.

    Returns:
        The bare token, or an Unauthenticated failure when the header is
        missing, uses another scheme, or carries no token.
    """
    if not auth_header:
        return unauthenticated("Missing Authorization header")

    scheme, _, token = auth_header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != _BEARER_SCHEME or not token:
        return unauthenticated("Invalid Authorization header")
    return token


async def verify_credential(provider: IdentityProvider, auth_header: str | None) -> UserIdentity | Failure:
    """Resolve the caller's identity from the Authorization header.

    Args:
        provider: Identity provider that validates the bare token.
        auth_header: Raw ``Authorization`` header value.

    Returns:
        The verified UserIdentity, or an Unauthenticated failure.
    """
    token = parse_bearer(auth_header)
    if isinstance(token, Failure):
        return token

    try:
        return await provider.verify_token(token)
    except IdentityRejected as exc:
        logger.info("auth_rejected", reason=str(exc))
        return unauthenticated()
    except httpx.HTTPError as exc:
        logger.warning("auth_provider_unreachable", error=str(exc), error_type=type(exc).__name__)
        return unauthenticated()
