"""
Authentication Service Layer

Registration, login, token refresh and self-service profile updates.
"""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tuitionhub.core.auth import AuthenticatedUser
from tuitionhub.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from tuitionhub.modules.auth.schemas import (
    AuthResponse,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
)
from tuitionhub.modules.shared import ConflictError, NotFoundError, ServiceError
from tuitionhub.modules.users.models import User, UserRole
from tuitionhub.modules.users.repository import UserRepository
from tuitionhub.modules.users.schemas import UserResponse

logger = logging.getLogger(__name__)


class EmailAlreadyRegisteredError(ConflictError):
    def __init__(self):
        super().__init__(
            message="An account with this email already exists",
            error_code="EMAIL_ALREADY_REGISTERED",
        )


class InvalidCredentialsError(ServiceError):
    def __init__(self, message: str = "Invalid email or password."):
        super().__init__(message=message, error_code="INVALID_CREDENTIALS", status_code=401)


class UserNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__(message="User not found", error_code="USER_NOT_FOUND")


def _issue_tokens(user: User) -> AuthResponse:
    """Create access and refresh tokens for ``user``."""
    additional_claims = {
        "email": user.email,
        "role": user.role.value,
        "name": user.name,
    }

    return AuthResponse(
        access_token=create_access_token(
            subject=str(user.id),
            additional_claims=additional_claims,
        ),
        refresh_token=create_refresh_token(subject=str(user.id)),
        token_type="bearer",
        user=UserResponse.model_validate(user),
    )


async def register(db: AsyncSession, data: RegisterRequest) -> AuthResponse:
    """
    Create an account and sign it in.

    Raises:
        EmailAlreadyRegisteredError: If the email is taken
    """
    if await UserRepository.email_exists(db, data.email):
        logger.warning("Registration attempt with an existing email")
        raise EmailAlreadyRegisteredError()

    try:
        user = await UserRepository.create(
            db,
            email=data.email,
            password_hash=hash_password(data.password),
            name=data.name,
            role=data.role,
            phone=data.phone,
            location=data.location,
            bio=data.bio,
            children=(
                [c.model_dump() for c in data.children]
                if data.children and data.role == UserRole.GUARDIAN
                else None
            ),
        )
        await db.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent registration of the same email
        await db.rollback()
        raise EmailAlreadyRegisteredError() from e

    logger.info(f"User registered: {user.id} (role: {user.role.value})")
    return _issue_tokens(user)


async def login(db: AsyncSession, credentials: LoginRequest) -> AuthResponse:
    """
    Authenticate by email and password.

    Raises:
        InvalidCredentialsError: If the email is unknown or the password is wrong
    """
    user = await UserRepository.get_by_email(db, credentials.email)

    if not user:
        logger.warning("Login attempt for non-existent email")
        raise InvalidCredentialsError()

    if not verify_password(credentials.password, user.password_hash):
        logger.warning(f"Invalid password for user: {user.id}")
        raise InvalidCredentialsError()

    logger.info(f"User logged in: {user.id} (role: {user.role.value})")
    return _issue_tokens(user)


async def refresh(db: AsyncSession, refresh_token: str) -> AuthResponse:
    """
    Exchange a refresh token for a new token pair.

    Raises:
        InvalidCredentialsError: If the token is invalid, expired, not a
            refresh token, or its user no longer exists
    """
    payload = decode_token(refresh_token)
    if payload is None or payload.get("type") != REFRESH_TOKEN_TYPE:
        raise InvalidCredentialsError("Invalid or expired refresh token.")

    try:
        user_id = UUID(payload.get("sub", ""))
    except ValueError as e:
        raise InvalidCredentialsError("Invalid or expired refresh token.") from e

    user = await UserRepository.get_by_id(db, user_id)
    if user is None:
        raise InvalidCredentialsError("Invalid or expired refresh token.")

    return _issue_tokens(user)


async def get_me(db: AsyncSession, current: AuthenticatedUser) -> UserResponse:
    user = await UserRepository.get_by_id(db, current.id)
    if user is None:
        raise UserNotFoundError()
    return UserResponse.model_validate(user)


async def update_profile(
    db: AsyncSession, current: AuthenticatedUser, data: ProfileUpdateRequest
) -> UserResponse:
    """
    Update the caller's own profile fields.

    ``children`` is only kept for guardians.

    Raises:
        UserNotFoundError: If the account no longer exists
    """
    user = await UserRepository.get_by_id(db, current.id)
    if user is None:
        raise UserNotFoundError()

    changes = data.model_dump(exclude_unset=True, exclude={"password", "children"})
    changes = {key: value for key, value in changes.items() if value is not None}

    if "children" in data.model_fields_set and user.role == UserRole.GUARDIAN:
        changes["children"] = [c.model_dump() for c in data.children or []]

    if data.password:
        changes["password_hash"] = hash_password(data.password)

    user = await UserRepository.update_profile(db, user, **changes)
    await db.commit()

    logger.info(
        f"Profile updated for user {user.id}: "
        f"{sorted(k for k in changes if k != 'password_hash')}"
        + (" (password changed)" if "password_hash" in changes else "")
    )
    return UserResponse.model_validate(user)
