from __future__ import annotations

import time

from jose import JWTError
from jose import jwt as jose_jwt

from ai_chat.exceptions import IdentityRejected
from ai_chat.models import UserIdentity


def _validate_jwt_claims(claims: dict) -> bool:
    """Validate the expiration and subject claims.

    Args:
        claims: Decoded JWT claims dict.

    Returns:
        True if all claims are valid.

    Raises:
        IdentityRejected: If any claim is invalid.
    """
    exp = claims.get("exp")
    if not exp or exp < time.time():
        raise IdentityRejected("Token has expired")

    if not claims.get("sub"):
        raise IdentityRejected("Missing subject claim")

    return True


class JwtIdentityProvider:
    """Verifies Supabase access tokens locally with the project's HS256 JWT secret.

    Avoids a round trip to the auth server per request; selected when
    ``SUPABASE_JWT_SECRET`` is configured.
    """

    def __init__(self, secret: str, audience: str | None = "authenticated") -> None:
        self._secret = secret
        self._audience = audience

    async def verify_token(self, token: str) -> UserIdentity:
        try:
            claims = jose_jwt.decode(
                token,
                self._secret,
                algorithms=["HS256"],
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except JWTError as e:
            raise IdentityRejected(f"Token validation failed: {e}") from e

        _validate_jwt_claims(claims)
        return UserIdentity(user_id=str(claims["sub"]))
