"""JWT verification for HTTP requests and socket handshakes."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from servicedesk.errors import AuthenticationError

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class TokenVerifier:
    """Verifies signed session tokens and returns the subject user id."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expire_minutes: int = 60 * 24,
    ) -> None:
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, user_id: str) -> str:
        """Sign a token for *user_id*.

        Only used by development tooling and tests; production tokens come
        from the account service with the same secret.
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "iat": now,
            "exp": now + timedelta(minutes=self.expire_minutes),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> str:
        """Decode *token* and return the user id it was issued for.

        Raises:
            AuthenticationError: If the token is missing, malformed, expired
                or signed with another key.
        """
        if not token:
            logger.info("[Auth] No token provided")
            raise AuthenticationError()
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.InvalidTokenError as exc:
            logger.warning("[Auth] Token rejected: %s", exc)
            raise AuthenticationError() from exc

        # Tokens minted by the legacy account service carry "id" instead of "sub".
        user_id = payload.get("sub") or payload.get("id")
        if not user_id:
            logger.warning("[Auth] Token has no subject claim")
            raise AuthenticationError()
        return str(user_id)
