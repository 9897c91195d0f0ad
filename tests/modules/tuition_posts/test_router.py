"""
HTTP-level tests for the tuition posts router: authentication, request
validation and the mapping of service errors to status codes.
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from tuitionhub.api import api_router
from tuitionhub.core.database import get_db
from tuitionhub.core.config import settings
from tuitionhub.core.rate_limit import reset_memory_store
from tuitionhub.core.security import create_access_token
from tuitionhub.modules.shared import ForbiddenError
from tuitionhub.modules.tuition_posts.schemas import TuitionPostListResponse
from tuitionhub.modules.tuition_posts.service import AlreadyAppliedError, require_can_apply


def _bearer(user) -> dict[str, str]:
    token = create_access_token(
        str(user.id),
        {"email": user.email, "role": user.role.value, "name": user.name},
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app(mock_db):
    application = FastAPI()
    application.include_router(api_router, prefix="/api")
    application.dependency_overrides[get_db] = lambda: mock_db
    return application


@pytest_asyncio.fixture
async def client(app):
    reset_memory_store()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    reset_memory_store()


@pytest.fixture
def mock_service():
    with patch("tuitionhub.modules.tuition_posts.router.service") as service:
        yield service


class TestTuitionPostRoutes:
    @pytest.mark.asyncio
    async def test_listing_is_public(self, client, mock_service):
        mock_service.list_posts = AsyncMock(
            return_value=TuitionPostListResponse(posts=[], total=0, total_pages=0, current_page=1)
        )

        response = await client.get("/api/tuition-posts", params={"subject": "math"})

        assert response.status_code == 200
        assert response.json()["total"] == 0
        assert mock_service.list_posts.call_args.kwargs["subject"] == "math"

    @pytest.mark.asyncio
    async def test_apply_requires_token(self, client, mock_service):
        response = await client.post(f"/api/tuition-posts/{uuid4()}/apply", json={})

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "NOT_AUTHENTICATED"

    @pytest.mark.asyncio
    async def test_apply_as_guardian_is_403(self, client, mock_service, guardian):
        mock_service.submit_application = AsyncMock(
            side_effect=ForbiddenError("Only tutors can apply to tuition posts")
        )

        response = await client.post(
            f"/api/tuition-posts/{uuid4()}/apply", json={}, headers=_bearer(guardian)
        )

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_duplicate_application_is_409(self, client, mock_service, tutor):
        mock_service.submit_application = AsyncMock(side_effect=AlreadyAppliedError())

        response = await client.post(
            f"/api/tuition-posts/{uuid4()}/apply", json={}, headers=_bearer(tutor)
        )

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "ALREADY_APPLIED"

    @pytest.mark.asyncio
    async def test_storage_failure_is_503(self, client, mock_service, tutor):
        mock_service.submit_application = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("timeout"))
        )

        response = await client.post(
            f"/api/tuition-posts/{uuid4()}/apply", json={}, headers=_bearer(tutor)
        )

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "STORAGE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_application_status_must_be_a_decision(self, client, mock_service, guardian):
        mock_service.update_application_status = AsyncMock()

        response = await client.put(
            f"/api/tuition-posts/{uuid4()}/applications/{uuid4()}",
            json={"status": "withdrawn"},
            headers=_bearer(guardian),
        )

        assert response.status_code == 422
        mock_service.update_application_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_post_id_is_422(self, client, mock_service):
        response = await client.get("/api/tuition-posts/not-a-uuid")

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_non_tutor_gets_403_even_past_the_apply_limit(
        self, client, mock_service, guardian
    ):
        mock_service.require_can_apply = require_can_apply
        mock_service.submit_application = AsyncMock()

        with patch.object(settings, "apply_rate_limit", 2):
            codes = [
                (
                    await client.post(
                        f"/api/tuition-posts/{uuid4()}/apply", json={}, headers=_bearer(guardian)
                    )
                ).status_code
                for _ in range(5)
            ]

        assert codes == [403] * 5
        mock_service.submit_application.assert_not_called()

    @pytest.mark.asyncio
    async def test_tutor_over_the_apply_limit_gets_429(self, client, mock_service, tutor):
        mock_service.require_can_apply = require_can_apply
        mock_service.submit_application = AsyncMock(side_effect=AlreadyAppliedError())

        with patch.object(settings, "apply_rate_limit", 2):
            codes = [
                (
                    await client.post(
                        f"/api/tuition-posts/{uuid4()}/apply", json={}, headers=_bearer(tutor)
                    )
                ).status_code
                for _ in range(3)
            ]

        assert codes == [409, 409, 429]
