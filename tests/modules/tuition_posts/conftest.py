"""
Fixtures for tuition posts tests.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from tuitionhub.modules.realtime.relay import RealtimeRelay
from tuitionhub.modules.tuition_posts import lifecycle
from tuitionhub.modules.tuition_posts.models import (
    ApplicationStatus,
    PostStatus,
    Priority,
    TuitionPost,
)


@pytest.fixture
def post_factory():
    """Build in-memory TuitionPost rows; keyword arguments override the defaults."""

    def make(**overrides) -> TuitionPost:
        now = datetime.now(UTC)
        values = {
            "id": uuid4(),
            "guardian_id": uuid4(),
            "title": "Algebra tutor needed",
            "description": "Grade 9 algebra, twice a week.",
            "subjects": [{"name": "Mathematics", "level": "high"}],
            "student_info": {"name": "Mina", "age": 14, "grade": "9"},
            "requirements": {"experience": 2, "teaching_mode": "offline"},
            "schedule": {"days_per_week": 2},
            "budget": {"min": 20.0, "max": 40.0, "currency": "USD"},
            "location": {"city": "Dhaka"},
            "tags": [],
            "status": PostStatus.ACTIVE,
            "priority": Priority.MEDIUM,
            "expires_at": now + timedelta(days=30),
            "applications": [],
            "selected_tutor_id": None,
            "version": 1,
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        return TuitionPost(**values)

    return make


@pytest.fixture
def application_factory():
    """Build embedded application documents."""

    def make(
        tutor_id=None,
        status: ApplicationStatus = ApplicationStatus.PENDING,
        applied_at: datetime | None = None,
    ) -> dict:
        application = lifecycle.build_application(
            tutor_id or uuid4(),
            cover_letter="I have taught algebra for five years.",
            proposed_rate=30.0,
            now=applied_at,
        )
        application["status"] = status.value
        return application

    return make


@pytest.fixture
def mock_repo():
    """Patch the tuition post repository and user lookups used by the service."""
    with (
        patch("tuitionhub.modules.tuition_posts.service.repository") as repo,
        patch("tuitionhub.modules.tuition_posts.service.UserRepository") as users,
    ):
        repo.save = AsyncMock(side_effect=lambda db, post: post)
        users.get_many_by_ids = AsyncMock(return_value={})
        yield repo


@pytest.fixture
def mock_relay():
    relay = MagicMock(spec=RealtimeRelay)
    relay.publish = AsyncMock()
    return relay
