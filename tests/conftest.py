"""
Fixtures shared by every test package.
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from tuitionhub.core.auth import AuthenticatedUser
from tuitionhub.modules.users.models import UserRole


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


def _user(role: UserRole, name: str) -> AuthenticatedUser:
    return AuthenticatedUser(
        id=uuid4(),
        email=f"{name.lower()}@example.com",
        role=role,
        name=name,
    )


@pytest.fixture
def guardian():
    return _user(UserRole.GUARDIAN, "Grace")


@pytest.fixture
def other_guardian():
    return _user(UserRole.GUARDIAN, "Gordon")


@pytest.fixture
def tutor():
    return _user(UserRole.TUTOR, "Tariq")


@pytest.fixture
def other_tutor():
    return _user(UserRole.TUTOR, "Tamsin")


@pytest.fixture
def student():
    return _user(UserRole.STUDENT, "Sam")


@pytest.fixture
def admin():
    return _user(UserRole.ADMIN, "Ada")
