"""
Authentication Router

Endpoints:
- POST /auth/register - Create an account (student, tutor or guardian)
- POST /auth/login - Exchange email and password for tokens
- POST /auth/refresh - Exchange a refresh token for a new token pair
- GET /auth/me - The authenticated user's profile
- PUT /auth/profile - Update the authenticated user's profile
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tuitionhub.core.auth import AuthenticatedUser, get_current_user
from tuitionhub.core.config import settings
from tuitionhub.core.database import get_db
from tuitionhub.core.rate_limit import enforce_rate_limit
from tuitionhub.modules.auth import service
from tuitionhub.modules.auth.schemas import (
    AuthResponse,
    LoginRequest,
    ProfileUpdateRequest,
    RefreshRequest,
    RegisterRequest,
)
from tuitionhub.modules.shared import (
    STORAGE_ERRORS,
    ServiceError,
    internal_error_exception,
    storage_unavailable_exception,
    to_http_exception,
)
from tuitionhub.modules.users.repository import normalize_email
from tuitionhub.modules.users.schemas import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _service_error(e: ServiceError, action: str) -> HTTPException:
    logger.warning(f"{action} rejected: {e.error_code} - {e.message}")
    return to_http_exception(e)


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create an account. Admin accounts cannot be self-registered.",
)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    try:
        return await service.register(db, data)
    except ServiceError as e:
        raise _service_error(e, "Registration") from e
    except STORAGE_ERRORS as e:
        logger.error(f"Storage unavailable during registration: {e}")
        raise storage_unavailable_exception() from e
    except Exception as e:
        logger.exception(f"Unexpected error during registration: {e}")
        raise internal_error_exception() from e


@router.post("/login", response_model=AuthResponse, summary="Login")
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """
    Authenticate user and return JWT tokens.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 429: Too many attempts for this email
    """
    await enforce_rate_limit(
        "login",
        normalize_email(credentials.email),
        settings.login_rate_limit,
        settings.login_rate_window_seconds,
    )

    try:
        return await service.login(db, credentials)
    except ServiceError as e:
        raise _service_error(e, "Login") from e
    except STORAGE_ERRORS as e:
        logger.error(f"Storage unavailable during login: {e}")
        raise storage_unavailable_exception() from e
    except Exception as e:
        logger.exception(f"Unexpected error during login: {e}")
        raise internal_error_exception() from e


@router.post("/refresh", response_model=AuthResponse, summary="Refresh Tokens")
async def refresh(
    data: RefreshRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    try:
        return await service.refresh(db, data.refresh_token)
    except ServiceError as e:
        raise _service_error(e, "Token refresh") from e
    except STORAGE_ERRORS as e:
        logger.error(f"Storage unavailable during token refresh: {e}")
        raise storage_unavailable_exception() from e
    except Exception as e:
        logger.exception(f"Unexpected error during token refresh: {e}")
        raise internal_error_exception() from e


@router.get("/me", response_model=UserResponse, summary="Current User")
async def me(
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    try:
        return await service.get_me(db, current_user)
    except ServiceError as e:
        raise _service_error(e, "Profile fetch") from e
    except STORAGE_ERRORS as e:
        logger.error(f"Storage unavailable fetching profile: {e}")
        raise storage_unavailable_exception() from e
    except Exception as e:
        logger.exception(f"Unexpected error fetching profile: {e}")
        raise internal_error_exception() from e


@router.put("/profile", response_model=UserResponse, summary="Update Profile")
async def update_profile(
    data: ProfileUpdateRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """
    Update the caller's profile.

    Email and role cannot be changed. Unknown fields are rejected with 422.
    """
    try:
        return await service.update_profile(db, current_user, data)
    except ServiceError as e:
        raise _service_error(e, "Profile update") from e
    except STORAGE_ERRORS as e:
        logger.error(f"Storage unavailable updating profile: {e}")
        raise storage_unavailable_exception() from e
    except Exception as e:
        logger.exception(f"Unexpected error updating profile: {e}")
        raise internal_error_exception() from e
