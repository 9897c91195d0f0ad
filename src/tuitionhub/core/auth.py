"""
Authentication Module

Provides authentication dependencies for FastAPI endpoints.
Validates the bearer JWT and exposes the caller as an AuthenticatedUser
built from the token claims. Authorization (what the caller may do) is
decided in the service layer from the user's role capabilities.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tuitionhub.core.security import ACCESS_TOKEN_TYPE, decode_token
from tuitionhub.modules.users.models import UserRole

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token for authentication",
)


@dataclass(frozen=True)
class AuthenticatedUser:
    """
    The caller of a request, populated from JWT claims.

    Attributes:
        id: User's unique identifier (UUID)
        email: User's email address
        role: User's role
        name: User's display name (optional)
    """

    id: UUID
    email: str
    role: UserRole
    name: str | None = None

    def __str__(self) -> str:
        return f"AuthenticatedUser(id={self.id}, email={self.email}, role={self.role.value})"


class InvalidTokenError(Exception):
    """Token is malformed, expired, of the wrong type or carries bad claims."""

    def __init__(self, error_code: str, message: str):
        self.error_code = error_code
        self.message = message
        super().__init__(message)


def _unauthorized(error_code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "error": error_code,
            "message": message,
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


def authenticate_token(token: str) -> AuthenticatedUser:
    """
    Validate an access token and extract the user claims.

    Used by the HTTP dependencies below and by the WebSocket handshake.

    Args:
        token: Encoded JWT

    Returns:
        AuthenticatedUser built from the token claims

    Raises:
        InvalidTokenError: If the token is invalid, expired or not an access token
    """
    payload = decode_token(token)

    if payload is None:
        raise InvalidTokenError("INVALID_TOKEN", "Invalid or expired authentication token.")

    token_type = payload.get("type", ACCESS_TOKEN_TYPE)
    if token_type != ACCESS_TOKEN_TYPE:
        raise InvalidTokenError("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        return AuthenticatedUser(
            id=UUID(user_id_str),
            email=payload.get("email", ""),
            role=UserRole(payload.get("role", "")),
            name=payload.get("name"),
        )
    except ValueError as e:
        raise InvalidTokenError(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> AuthenticatedUser:
    """
    FastAPI dependency that validates the JWT token and returns the caller.

    Usage:
        @router.get("/endpoint")
        async def endpoint(user: AuthenticatedUser = Depends(get_current_user)):
            # user.id, user.email, user.role are available

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
    """
    if credentials is None:
        raise _unauthorized("NOT_AUTHENTICATED", "No token, authorization denied.")

    try:
        user = authenticate_token(credentials.credentials)
    except InvalidTokenError as e:
        logger.warning(f"Rejected bearer token: {e.error_code}")
        raise _unauthorized(e.error_code, e.message) from e

    logger.debug(f"Authenticated user: {user.id} ({user.role.value})")
    return user


__all__ = [
    "AuthenticatedUser",
    "InvalidTokenError",
    "authenticate_token",
    "get_current_user",
]
