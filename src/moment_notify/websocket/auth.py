"""Bearer credential verification for sockets and HTTP routes."""

from typing import Any

import jwt
from loguru import logger

from moment_notify.exceptions import MomentNotifyError
from moment_notify.settings import Settings


class InvalidCredentialsError(MomentNotifyError):
    """Raised when a bearer credential is missing, malformed, expired or carries no user id."""


def extract_bearer(authorization: str | None) -> str | None:
    """Token part of an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def decode_user_id(token: str | None, settings: Settings) -> str:
    """Verify ``token`` and return the user id it was issued for.

    The id is read from the ``id`` claim, falling back to ``sub``.

    Raises:
        InvalidCredentialsError: If the token is missing, invalid or has no user id
    """
    if not token:
        raise InvalidCredentialsError("Authentication token required")

    try:
        claims: dict[str, Any] = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as e:
        raise InvalidCredentialsError("Token expired") from e
    except jwt.PyJWTError as e:
        logger.debug(f"Rejected bearer token: {e}")
        raise InvalidCredentialsError("Invalid token") from e

    user_id = claims.get("id", claims.get("sub"))
    if user_id in (None, ""):
        raise InvalidCredentialsError("Token carries no user id")
    return str(user_id)
