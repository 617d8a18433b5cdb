"""
Identity Resolution

Sign-in itself happens at the OAuth-backed identity provider. The provider
hands the browser a signed access token; every API request carries it as
"Authorization: Bearer <token>". All we do here is verify that token and
read the user id out of it.

CRITICAL: The user id returned here is the ONLY source of ownership.
A user_id in a request body is never trusted.
"""

from typing import Optional

import structlog
from jose import JWTError, jwt
from pydantic import ValidationError

from finance_tracker.config import AuthSettings, get_settings
from finance_tracker.validation.fields import is_uuid


logger = structlog.get_logger(__name__)


class IdentityResolver:
    """Verifies bearer tokens and resolves them to a user id."""

    def __init__(self, settings: Optional[AuthSettings] = None):
        self._settings = settings

    def _auth_settings(self) -> Optional[AuthSettings]:
        if self._settings is None:
            try:
                self._settings = get_settings().auth
            except ValidationError:
                logger.error("auth_not_configured")
                return None
        return self._settings

    def resolve(self, credential: Optional[str]) -> Optional[str]:
        """
        Resolve a bearer token to the user's id.

        Returns:
            The user id, or None if the token is missing, malformed,
            expired, signed with the wrong key, or names no valid user.
        """
        if not credential:
            return None

        settings = self._auth_settings()
        if settings is None:
            return None

        try:
            claims = jwt.decode(
                credential,
                settings.jwt_secret,
                algorithms=[settings.jwt_algorithm],
                audience=settings.jwt_audience,
            )
        except JWTError as e:
            logger.info("token_rejected", reason=str(e))
            return None

        user_id = claims.get("sub")
        if not is_uuid(user_id):
            logger.info("token_rejected", reason="sub claim is not a user id")
            return None
        return user_id.lower()
