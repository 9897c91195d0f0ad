"""
Unit tests for the tuition posts service layer.

These tests cover:
- Post creation and updates (authorization, status changes)
- Applying (role checks, duplicates, inactive and expired posts)
- Accepting / rejecting / withdrawing applications
- Version conflict retries
- Dashboards (my posts, my applications)
- Listing and pagination
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm.exc import StaleDataError

from tuitionhub.modules.realtime.events import (
    APPLICATION_RECEIVED,
    APPLICATION_UPDATED,
    TUITION_POST_CREATED,
    guardian_room,
    tutor_room,
)
from tuitionhub.modules.shared import (
    MAX_WRITE_ATTEMPTS,
    ConcurrentModificationError,
    ConflictError,
    ForbiddenError,
)
from tuitionhub.modules.tuition_posts.models import ApplicationStatus, PostStatus
from tuitionhub.modules.tuition_posts.schemas import (
    ApplyRequest,
    SubjectItem,
    TuitionPostCreate,
    TuitionPostUpdate,
)
from tuitionhub.modules.tuition_posts.service import (
    AlreadyAppliedError,
    ApplicationNotFoundError,
    InvalidTransitionError,
    PostNotActiveError,
    PostNotFoundError,
    create_post,
    get_post,
    list_my_applications,
    list_my_posts,
    list_posts,
    submit_application,
    update_application_status,
    update_post,
    withdraw_application,
)


def _create_request(**overrides) -> TuitionPostCreate:
    values = {
        "title": "Physics tutor",
        "description": "A-level physics revision.",
        "subjects": [SubjectItem(name="Physics", level="high")],
    }
    values.update(overrides)
    return TuitionPostCreate(**values)


class TestCreatePost:
    """Tests for create_post."""

    @pytest.mark.asyncio
    async def test_guardian_creates_active_post(
        self, mock_db, mock_repo, mock_relay, guardian, post_factory
    ):
        created = post_factory(guardian_id=guardian.id, title="Physics tutor")
        mock_repo.create = AsyncMock(return_value=created)

        result = await create_post(mock_db, guardian, _create_request(), mock_relay)

        assert result.id == created.id
        assert result.status == PostStatus.ACTIVE
        assert result.application_count == 0

        kwargs = mock_repo.create.call_args.kwargs
        assert kwargs["guardian_id"] == guardian.id
        expected_expiry = datetime.now(UTC) + timedelta(days=30)
        assert abs((kwargs["expires_at"] - expected_expiry).total_seconds()) < 60

        mock_relay.publish.assert_awaited_once()
        assert mock_relay.publish.call_args.args[0] == TUITION_POST_CREATED

    @pytest.mark.asyncio
    async def test_explicit_expiry_is_kept(self, mock_db, mock_repo, guardian, post_factory):
        expires_at = datetime.now(UTC) + timedelta(days=3)
        mock_repo.create = AsyncMock(return_value=post_factory(guardian_id=guardian.id))

        await create_post(mock_db, guardian, _create_request(expires_at=expires_at))

        assert mock_repo.create.call_args.kwargs["expires_at"] == expires_at

    @pytest.mark.asyncio
    async def test_admin_can_create_post(self, mock_db, mock_repo, admin, post_factory):
        mock_repo.create = AsyncMock(return_value=post_factory(guardian_id=admin.id))

        result = await create_post(mock_db, admin, _create_request())

        assert result.guardian_id == admin.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role_fixture", ["tutor", "student"])
    async def test_other_roles_cannot_create(self, request, mock_db, mock_repo, role_fixture):
        user = request.getfixturevalue(role_fixture)
        mock_repo.create = AsyncMock()

        with pytest.raises(ForbiddenError):
            await create_post(mock_db, user, _create_request())

        mock_repo.create.assert_not_called()

    def test_past_expiry_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            _create_request(expires_at=datetime.now(UTC) - timedelta(hours=1))


class TestGetPost:
    @pytest.mark.asyncio
    async def test_not_found(self, mock_db, mock_repo):
        mock_repo.get_by_id = AsyncMock(return_value=None)

        with pytest.raises(PostNotFoundError):
            await get_post(mock_db, uuid4())

    @pytest.mark.asyncio
    async def test_unresolvable_guardian_renders_as_none(self, mock_db, mock_repo, post_factory):
        post = post_factory()
        mock_repo.get_by_id = AsyncMock(return_value=post)

        result = await get_post(mock_db, post.id)

        assert result.guardian_id == post.guardian_id
        assert result.guardian is None


class TestUpdatePost:
    """Tests for update_post."""

    @pytest.mark.asyncio
    async def test_owner_updates_title_and_cancels(
        self, mock_db, mock_repo, guardian, post_factory
    ):
        post = post_factory(guardian_id=guardian.id)
        mock_repo.get_by_id = AsyncMock(return_value=post)

        data = TuitionPostUpdate(title="Physics and chemistry", status=PostStatus.CANCELLED)
        result = await update_post(mock_db, guardian, post.id, data)

        assert result.title == "Physics and chemistry"
        assert result.status == PostStatus.CANCELLED
        mock_repo.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unset_fields_are_untouched(self, mock_db, mock_repo, guardian, post_factory):
        post = post_factory(guardian_id=guardian.id)
        original_subjects = post.subjects
        mock_repo.get_by_id = AsyncMock(return_value=post)

        await update_post(mock_db, guardian, post.id, TuitionPostUpdate(tags=["exam"]))

        assert post.tags == ["exam"]
        assert post.subjects == original_subjects
        assert post.status == PostStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_admin_may_update_any_post(self, mock_db, mock_repo, admin, post_factory):
        post = post_factory()
        mock_repo.get_by_id = AsyncMock(return_value=post)

        result = await update_post(
            mock_db, admin, post.id, TuitionPostUpdate(description="Updated by admin")
        )

        assert result.description == "Updated by admin"

    @pytest.mark.asyncio
    async def test_other_guardian_is_forbidden(
        self, mock_db, mock_repo, other_guardian, post_factory
    ):
        post = post_factory()
        mock_repo.get_by_id = AsyncMock(return_value=post)

        with pytest.raises(ForbiddenError):
            await update_post(mock_db, other_guardian, post.id, TuitionPostUpdate(title="Mine"))

        assert post.title == "Algebra tutor needed"
        mock_repo.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_cannot_cancel_filled_post(self, mock_db, mock_repo, guardian, post_factory):
        post = post_factory(guardian_id=guardian.id, status=PostStatus.FILLED)
        mock_repo.get_by_id = AsyncMock(return_value=post)

        with pytest.raises(InvalidTransitionError):
            await update_post(
                mock_db, guardian, post.id, TuitionPostUpdate(status=PostStatus.CANCELLED)
            )

        assert post.status == PostStatus.FILLED

    def test_status_filled_cannot_be_requested(self):
        with pytest.raises(PydanticValidationError):
            TuitionPostUpdate(status=PostStatus.FILLED)

    def test_status_active_cannot_be_requested(self):
        with pytest.raises(PydanticValidationError, match="cancelled"):
            TuitionPostUpdate(status=PostStatus.ACTIVE)

    def test_title_is_stripped_and_must_not_be_blank(self):
        assert TuitionPostUpdate(title="  Physics tutor  ").title == "Physics tutor"
        with pytest.raises(PydanticValidationError):
            TuitionPostUpdate(title="   ")

    def test_unknown_fields_are_rejected(self):
        with pytest.raises(PydanticValidationError):
            TuitionPostUpdate(applications=[])


class TestSubmitApplication:
    """Tests for submit_application."""

    @pytest.mark.asyncio
    async def test_tutor_applies(self, mock_db, mock_repo, mock_relay, tutor, post_factory):
        post = post_factory()
        mock_repo.get_by_id = AsyncMock(return_value=post)

        result = await submit_application(
            mock_db,
            tutor,
            post.id,
            ApplyRequest(cover_letter="Happy to help", proposed_rate=25),
            mock_relay,
        )

        assert result.application_count == 1
        application = result.applications[0]
        assert application.tutor_id == tutor.id
        assert application.status == ApplicationStatus.PENDING
        assert application.proposed_rate == 25
        mock_repo.save.assert_awaited_once()

        mock_relay.publish.assert_awaited_once()
        call = mock_relay.publish.call_args
        assert call.args[0] == APPLICATION_RECEIVED
        assert call.kwargs["room"] == guardian_room(post.guardian_id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role_fixture", ["student", "guardian", "admin"])
    async def test_non_tutors_are_refused_before_any_read(
        self, request, mock_db, mock_repo, role_fixture
    ):
        user = request.getfixturevalue(role_fixture)
        mock_repo.get_by_id = AsyncMock()

        with pytest.raises(ForbiddenError):
            await submit_application(mock_db, user, uuid4(), ApplyRequest())

        mock_repo.get_by_id.assert_not_called()
        mock_repo.save.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "first_status",
        [
            ApplicationStatus.PENDING,
            ApplicationStatus.REJECTED,
            ApplicationStatus.WITHDRAWN,
        ],
    )
    async def test_second_application_is_conflict(
        self, mock_db, mock_repo, tutor, post_factory, application_factory, first_status
    ):
        first = application_factory(tutor_id=tutor.id, status=first_status)
        post = post_factory(applications=[first])
        mock_repo.get_by_id = AsyncMock(return_value=post)

        with pytest.raises(AlreadyAppliedError):
            await submit_application(mock_db, tutor, post.id, ApplyRequest())

        assert post.applications == [first]
        mock_repo.save.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [PostStatus.FILLED, PostStatus.CANCELLED, PostStatus.EXPIRED]
    )
    async def test_non_active_post_is_conflict(
        self, mock_db, mock_repo, tutor, post_factory, status
    ):
        post = post_factory(status=status)
        mock_repo.get_by_id = AsyncMock(return_value=post)

        with pytest.raises(PostNotActiveError) as exc_info:
            await submit_application(mock_db, tutor, post.id, ApplyRequest())

        assert isinstance(exc_info.value, ConflictError)
        assert post.applications == []

    @pytest.mark.asyncio
    async def test_expired_post_is_marked_expired(self, mock_db, mock_repo, tutor, post_factory):
        post = post_factory(expires_at=datetime.now(UTC) - timedelta(minutes=5))
        mock_repo.get_by_id = AsyncMock(return_value=post)

        with pytest.raises(PostNotActiveError):
            await submit_application(mock_db, tutor, post.id, ApplyRequest())

        assert post.status == PostStatus.EXPIRED
        assert post.applications == []
        mock_repo.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_post_not_found(self, mock_db, mock_repo, tutor):
        mock_repo.get_by_id = AsyncMock(return_value=None)

        with pytest.raises(PostNotFoundError):
            await submit_application(mock_db, tutor, uuid4(), ApplyRequest())


class TestUpdateApplicationStatus:
    """Tests for accepting and rejecting applications."""

    @pytest.mark.asyncio
    async def test_accept_settles_post(
        self, mock_db, mock_repo, mock_relay, guardian, post_factory, application_factory
    ):
        a = application_factory()
        b = application_factory()
        c = application_factory(status=ApplicationStatus.REJECTED)
        post = post_factory(guardian_id=guardian.id, applications=[a, b, c])
        mock_repo.get_by_id = AsyncMock(return_value=post)

        result = await update_application_status(
            mock_db, guardian, post.id, UUID(a["id"]), ApplicationStatus.ACCEPTED, mock_relay
        )

        statuses = {str(app.id): app.status for app in result.applications}
        assert statuses[a["id"]] == ApplicationStatus.ACCEPTED
        assert statuses[b["id"]] == ApplicationStatus.REJECTED
        assert statuses[c["id"]] == ApplicationStatus.REJECTED
        assert result.status == PostStatus.FILLED
        assert result.selected_tutor_id == UUID(a["tutor_id"])

        # A and B changed; C was already rejected
        rooms = [call.kwargs["room"] for call in mock_relay.publish.call_args_list]
        assert rooms == [tutor_room(a["tutor_id"]), tutor_room(b["tutor_id"])]
        assert all(
            call.args[0] == APPLICATION_UPDATED for call in mock_relay.publish.call_args_list
        )

    @pytest.mark.asyncio
    async def test_accept_same_application_again_is_noop(
        self, mock_db, mock_repo, mock_relay, guardian, post_factory, application_factory
    ):
        a = application_factory(status=ApplicationStatus.ACCEPTED)
        post = post_factory(
            guardian_id=guardian.id,
            applications=[a],
            status=PostStatus.FILLED,
            selected_tutor_id=UUID(a["tutor_id"]),
        )
        mock_repo.get_by_id = AsyncMock(return_value=post)

        result = await update_application_status(
            mock_db, guardian, post.id, UUID(a["id"]), ApplicationStatus.ACCEPTED, mock_relay
        )

        assert result.status == PostStatus.FILLED
        mock_relay.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_accept_other_application_on_filled_post(
        self, mock_db, mock_repo, guardian, post_factory, application_factory
    ):
        a = application_factory(status=ApplicationStatus.ACCEPTED)
        b = application_factory(status=ApplicationStatus.REJECTED)
        post = post_factory(
            guardian_id=guardian.id,
            applications=[a, b],
            status=PostStatus.FILLED,
            selected_tutor_id=UUID(a["tutor_id"]),
        )
        mock_repo.get_by_id = AsyncMock(return_value=post)

        with pytest.raises(ConflictError):
            await update_application_status(
                mock_db, guardian, post.id, UUID(b["id"]), ApplicationStatus.ACCEPTED
            )

        assert post.selected_tutor_id == UUID(a["tutor_id"])

    @pytest.mark.asyncio
    async def test_reject_leaves_siblings_and_post(
        self, mock_db, mock_repo, guardian, post_factory, application_factory
    ):
        a = application_factory()
        b = application_factory()
        post = post_factory(guardian_id=guardian.id, applications=[a, b])
        mock_repo.get_by_id = AsyncMock(return_value=post)

        result = await update_application_status(
            mock_db, guardian, post.id, UUID(a["id"]), ApplicationStatus.REJECTED
        )

        statuses = {str(app.id): app.status for app in result.applications}
        assert statuses == {
            a["id"]: ApplicationStatus.REJECTED,
            b["id"]: ApplicationStatus.PENDING,
        }
        assert result.status == PostStatus.ACTIVE
        assert result.selected_tutor_id is None

    @pytest.mark.asyncio
    async def test_admin_may_decide(
        self, mock_db, mock_repo, admin, post_factory, application_factory
    ):
        a = application_factory()
        post = post_factory(applications=[a])
        mock_repo.get_by_id = AsyncMock(return_value=post)

        result = await update_application_status(
            mock_db, admin, post.id, UUID(a["id"]), ApplicationStatus.ACCEPTED
        )

        assert result.status == PostStatus.FILLED

    @pytest.mark.asyncio
    async def test_other_guardian_is_forbidden(
        self, mock_db, mock_repo, other_guardian, post_factory, application_factory
    ):
        a = application_factory()
        post = post_factory(applications=[a])
        mock_repo.get_by_id = AsyncMock(return_value=post)

        with pytest.raises(ForbiddenError):
            await update_application_status(
                mock_db, other_guardian, post.id, UUID(a["id"]), ApplicationStatus.ACCEPTED
            )

        assert post.status == PostStatus.ACTIVE
        assert post.applications[0]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_unknown_application(self, mock_db, mock_repo, guardian, post_factory):
        post = post_factory(guardian_id=guardian.id)
        mock_repo.get_by_id = AsyncMock(return_value=post)

        with pytest.raises(ApplicationNotFoundError):
            await update_application_status(
                mock_db, guardian, post.id, uuid4(), ApplicationStatus.REJECTED
            )


class TestVersionConflicts:
    """Writes that lose a version race are re-run on a fresh read."""

    @pytest.mark.asyncio
    async def test_retry_succeeds_after_conflict(
        self, mock_db, mock_repo, guardian, post_factory, application_factory
    ):
        a = application_factory()
        stale = post_factory(guardian_id=guardian.id, applications=[dict(a)])
        fresh = post_factory(id=stale.id, guardian_id=guardian.id, applications=[dict(a)])
        mock_repo.get_by_id = AsyncMock(side_effect=[stale, fresh])
        mock_repo.save = AsyncMock(side_effect=[StaleDataError("version mismatch"), fresh])

        result = await update_application_status(
            mock_db, guardian, stale.id, UUID(a["id"]), ApplicationStatus.ACCEPTED
        )

        assert result.status == PostStatus.FILLED
        assert mock_repo.get_by_id.await_count == 2
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_second_writer_sees_committed_acceptance(
        self, mock_db, mock_repo, guardian, post_factory, application_factory
    ):
        """Two accepts race: the loser re-reads a filled post and gets a conflict."""
        a = application_factory()
        b = application_factory()
        stale = post_factory(guardian_id=guardian.id, applications=[dict(a), dict(b)])
        already_filled = post_factory(
            id=stale.id,
            guardian_id=guardian.id,
            applications=[
                {**a, "status": "accepted"},
                {**b, "status": "rejected"},
            ],
            status=PostStatus.FILLED,
            selected_tutor_id=UUID(a["tutor_id"]),
        )
        mock_repo.get_by_id = AsyncMock(side_effect=[stale, already_filled])
        mock_repo.save = AsyncMock(side_effect=StaleDataError("version mismatch"))

        with pytest.raises(PostNotActiveError):
            await update_application_status(
                mock_db, guardian, stale.id, UUID(b["id"]), ApplicationStatus.ACCEPTED
            )

        assert already_filled.selected_tutor_id == UUID(a["tutor_id"])
        assert mock_repo.save.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(
        self, mock_db, mock_repo, guardian, post_factory, application_factory
    ):
        a = application_factory()
        mock_repo.get_by_id = AsyncMock(
            side_effect=lambda db, post_id: post_factory(
                id=post_id, guardian_id=guardian.id, applications=[dict(a)]
            )
        )
        mock_repo.save = AsyncMock(side_effect=StaleDataError("version mismatch"))

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await update_application_status(
                mock_db, guardian, uuid4(), UUID(a["id"]), ApplicationStatus.ACCEPTED
            )

        assert exc_info.value.error_code == "CONCURRENT_MODIFICATION"
        assert exc_info.value.status_code == 409
        assert mock_repo.save.await_count == MAX_WRITE_ATTEMPTS
        assert mock_db.rollback.await_count == MAX_WRITE_ATTEMPTS


class TestWithdrawApplication:
    @pytest.mark.asyncio
    async def test_tutor_withdraws_own_application(
        self, mock_db, mock_repo, tutor, post_factory, application_factory
    ):
        mine = application_factory(tutor_id=tutor.id)
        post = post_factory(applications=[mine])
        mock_repo.get_by_id = AsyncMock(return_value=post)

        result = await withdraw_application(mock_db, tutor, post.id, UUID(mine["id"]))

        assert result.applications[0].status == ApplicationStatus.WITHDRAWN
        assert result.status == PostStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_cannot_withdraw_someone_elses(
        self, mock_db, mock_repo, tutor, other_tutor, post_factory, application_factory
    ):
        theirs = application_factory(tutor_id=other_tutor.id)
        post = post_factory(applications=[theirs])
        mock_repo.get_by_id = AsyncMock(return_value=post)

        with pytest.raises(ForbiddenError):
            await withdraw_application(mock_db, tutor, post.id, UUID(theirs["id"]))

        assert post.applications[0]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_cannot_withdraw_accepted(
        self, mock_db, mock_repo, tutor, post_factory, application_factory
    ):
        mine = application_factory(tutor_id=tutor.id, status=ApplicationStatus.ACCEPTED)
        post = post_factory(
            applications=[mine], status=PostStatus.FILLED, selected_tutor_id=tutor.id
        )
        mock_repo.get_by_id = AsyncMock(return_value=post)

        with pytest.raises(InvalidTransitionError):
            await withdraw_application(mock_db, tutor, post.id, UUID(mine["id"]))


class TestDashboards:
    """Tests for my posts and my applications."""

    @pytest.mark.asyncio
    async def test_guardian_sees_own_posts(self, mock_db, mock_repo, guardian, post_factory):
        mock_repo.list_by_guardian = AsyncMock(
            return_value=[post_factory(guardian_id=guardian.id)]
        )
        mock_repo.list_all = AsyncMock()

        result = await list_my_posts(mock_db, guardian)

        assert len(result) == 1
        mock_repo.list_by_guardian.assert_awaited_once_with(mock_db, guardian.id)
        mock_repo.list_all.assert_not_called()

    @pytest.mark.asyncio
    async def test_admin_sees_all_posts(self, mock_db, mock_repo, admin, post_factory):
        mock_repo.list_all = AsyncMock(return_value=[post_factory(), post_factory()])

        result = await list_my_posts(mock_db, admin)

        assert len(result) == 2

    @pytest.mark.asyncio
    async def test_tutor_has_no_posts(self, mock_db, mock_repo, tutor):
        with pytest.raises(ForbiddenError):
            await list_my_posts(mock_db, tutor)

    @pytest.mark.asyncio
    async def test_my_applications_newest_first(
        self, mock_db, mock_repo, tutor, post_factory, application_factory
    ):
        now = datetime.now(UTC)
        accepted = application_factory(
            tutor_id=tutor.id,
            status=ApplicationStatus.ACCEPTED,
            applied_at=now - timedelta(days=2),
        )
        pending = application_factory(tutor_id=tutor.id, applied_at=now - timedelta(hours=1))
        p1 = post_factory(
            title="P1",
            applications=[accepted, application_factory(status=ApplicationStatus.REJECTED)],
            status=PostStatus.FILLED,
            selected_tutor_id=tutor.id,
        )
        p2 = post_factory(title="P2", applications=[application_factory(), pending])
        mock_repo.list_by_tutor_application = AsyncMock(return_value=[p1, p2])

        result = await list_my_applications(mock_db, tutor)

        assert [item.title for item in result] == ["P2", "P1"]
        assert result[0].my_application.status == ApplicationStatus.PENDING
        assert result[1].my_application.status == ApplicationStatus.ACCEPTED
        assert all(item.my_application.tutor_id == tutor.id for item in result)

    @pytest.mark.asyncio
    async def test_guardian_has_no_applications(self, mock_db, mock_repo, guardian):
        with pytest.raises(ForbiddenError):
            await list_my_applications(mock_db, guardian)


class TestListPosts:
    @pytest.mark.asyncio
    async def test_pagination(self, mock_db, mock_repo, post_factory):
        mock_repo.list_posts = AsyncMock(return_value=([post_factory(), post_factory()], 12))

        result = await list_posts(mock_db, subject="math", page=2, limit=5)

        assert result.total == 12
        assert result.total_pages == 3
        assert result.current_page == 2
        assert len(result.posts) == 2

        kwargs = mock_repo.list_posts.call_args.kwargs
        assert kwargs["skip"] == 5
        assert kwargs["limit"] == 5
        assert kwargs["subject"] == "math"
        assert kwargs["status"] == PostStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_empty_result(self, mock_db, mock_repo):
        mock_repo.list_posts = AsyncMock(return_value=([], 0))

        result = await list_posts(mock_db)

        assert result.posts == []
        assert result.total == 0
        assert result.total_pages == 0
