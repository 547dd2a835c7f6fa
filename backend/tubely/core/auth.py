"""
Tubely Authentication Module

This module resolves the caller of an upload from a Bearer token. Tokens are
HS256 JWTs signed with the configured ``jwt_secret``:

- sub: the user's UUID
- iss: ``jwt_issuer`` (default "tubely-access")
- iat / exp: issue and expiry timestamps

The upload pipeline consumes authentication through the Authenticator
interface, so the HTTP layer only extracts the raw token and the pipeline
decides whether it is valid.

Usage:
    ```python
    authenticator = JWTAuthenticator(settings)
    user_id = authenticator.validate(token)
    ```
"""

import abc
import logging

from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from tubely.config import Settings
from tubely.core.exceptions import Unauthorized


# Configure module logger
logger = logging.getLogger(__name__)


# HTTPBearer without auto_error: a missing header is reported by the
# authenticator as Unauthorized, not by FastAPI as 403
security = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication.",
    auto_error=False,
)


class Authenticator(abc.ABC):
    """Resolves a bearer token to a user identity."""

    @abc.abstractmethod
    def validate(self, token: str | None) -> UUID:
        """
        Return the user the token was issued to.

        Raises:
            Unauthorized: If the token is missing, malformed, expired or forged.
        """


class JWTAuthenticator(Authenticator):
    """Validates locally issued HS256 access tokens."""

    def __init__(self, settings: Settings) -> None:
        self.secret = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.issuer = settings.jwt_issuer

    def validate(self, token: str | None) -> UUID:
        if not token:
            raise Unauthorized("Couldn't find JWT")

        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
            )
        except JWTError as e:
            logger.warning("JWT validation failed: %s", str(e))
            raise Unauthorized("Couldn't validate JWT") from e

        subject = payload.get("sub")
        try:
            return UUID(str(subject))
        except ValueError as e:
            logger.warning("JWT subject is not a user id: %r", subject)
            raise Unauthorized("Couldn't validate JWT") from e


def create_access_token(
    user_id: UUID,
    settings: Settings,
    expires_in: timedelta | None = None,
) -> str:
    """
    Issue an access token for ``user_id``.

    Args:
        user_id: The user the token authenticates.
        settings: Settings providing the secret, algorithm and issuer.
        expires_in: Token lifetime; defaults to ``jwt_expiration_hours``.

    Returns:
        str: The encoded JWT.
    """
    now = datetime.now(UTC)
    expire = now + (expires_in or timedelta(hours=settings.jwt_expiration_hours))

    payload = {
        "sub": str(user_id),
        "iss": settings.jwt_issuer,
        "iat": now,
        "exp": expire,
    }

    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    logger.debug("Created access token for user %s (expires: %s)", user_id, expire.isoformat())
    return token


async def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str | None:
    """FastAPI dependency returning the raw Bearer token, if any."""
    if credentials is None:
        return None
    return credentials.credentials
