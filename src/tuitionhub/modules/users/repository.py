"""
User Repository

Database operations for user management.
"""

import logging
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tuitionhub.modules.users.models import User, UserRole

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Emails are stored trimmed and lower-cased."""
    return email.strip().lower()


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        name: str,
        role: UserRole,
        phone: str = "",
        location: str = "",
        bio: str = "",
        children: list[dict[str, Any]] | None = None,
        permissions: list[str] | None = None,
        is_verified: bool = False,
    ) -> User:
        """
        Create a new user record.

        Args:
            db: Database session
            email: User's email address (unique, stored lower-cased)
            password_hash: Hashed password
            name: Display name
            role: User's role
            phone: Phone number (optional)
            location: Free-text location (optional)
            bio: Short biography (optional)
            children: Guardian's children, ignored for other roles
            permissions: Admin permissions, ignored for other roles
            is_verified: Whether email is verified

        Returns:
            Created User instance
        """
        user = User(
            email=normalize_email(email),
            password_hash=password_hash,
            name=name,
            role=role,
            phone=phone,
            location=location,
            bio=bio,
            children=list(children or []) if role == UserRole.GUARDIAN else None,
            permissions=list(permissions or []) if role == UserRole.ADMIN else None,
            is_verified=is_verified,
        )

        db.add(user)
        await db.flush()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} - {user.email} ({user.role.value})")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str | UUID) -> User | None:
        """
        Get a user by ID.

        Args:
            db: Database session
            user_id: User UUID

        Returns:
            User instance or None if not found
        """
        result = await db.execute(select(User).where(User.id == UUID(str(user_id))))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_many_by_ids(db: AsyncSession, user_ids: Iterable[str | UUID]) -> dict[UUID, User]:
        """
        Resolve a batch of user IDs in one query.

        Returns:
            Mapping of user ID to User; unknown IDs are simply absent
        """
        ids = {UUID(str(uid)) for uid in user_ids}
        if not ids:
            return {}
        result = await db.execute(select(User).where(User.id.in_(ids)))
        return {user.id: user for user in result.scalars().all()}

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """
        Get a user by email address (case-insensitive).

        Args:
            db: Database session
            email: Email address

        Returns:
            User instance or None if not found
        """
        result = await db.execute(
            select(User).where(func.lower(User.email) == normalize_email(email))
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def email_exists(db: AsyncSession, email: str) -> bool:
        """
        Check if an email address is already registered.

        Args:
            db: Database session
            email: Email address to check

        Returns:
            True if email exists, False otherwise
        """
        user = await UserRepository.get_by_email(db, email)
        return user is not None

    @staticmethod
    async def update_profile(db: AsyncSession, user: User, **fields: Any) -> User:
        """
        Apply profile changes to a user.

        Only keys present in ``fields`` are written. Email and role are
        not profile fields and are never passed here.
        """
        for key, value in fields.items():
            setattr(user, key, value)

        await db.flush()
        await db.refresh(user)

        logger.info(f"Updated profile for user {user.id}: {sorted(fields)}")
        return user
