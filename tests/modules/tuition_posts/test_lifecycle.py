"""
Unit tests for the tuition post lifecycle engine.

These tests cover:
- Post and application status transition tables
- Accepting an application (sibling rejection, selected tutor, idempotence)
- Rejecting and withdrawing single applications
- Expiry detection
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from tuitionhub.modules.tuition_posts import lifecycle
from tuitionhub.modules.tuition_posts.models import ApplicationStatus, PostStatus


class TestTransitionTables:
    """Tests for the status transition rules."""

    @pytest.mark.parametrize(
        "new_status", [PostStatus.FILLED, PostStatus.EXPIRED, PostStatus.CANCELLED]
    )
    def test_active_post_can_leave_active(self, new_status):
        assert lifecycle.can_transition_post(PostStatus.ACTIVE, new_status)

    @pytest.mark.parametrize(
        "terminal", [PostStatus.FILLED, PostStatus.EXPIRED, PostStatus.CANCELLED]
    )
    def test_terminal_post_states_are_final(self, terminal):
        for new_status in PostStatus:
            assert not lifecycle.can_transition_post(terminal, new_status)

    def test_pending_application_transitions(self):
        for new_status in (
            ApplicationStatus.ACCEPTED,
            ApplicationStatus.REJECTED,
            ApplicationStatus.WITHDRAWN,
        ):
            assert lifecycle.can_transition_application(ApplicationStatus.PENDING, new_status)

    def test_decided_application_cannot_be_reopened(self):
        assert not lifecycle.can_transition_application(
            ApplicationStatus.REJECTED, ApplicationStatus.PENDING
        )
        assert not lifecycle.can_transition_application(
            ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED
        )

    def test_set_post_status_same_status_is_noop(self, post_factory):
        post = post_factory(status=PostStatus.CANCELLED)
        assert lifecycle.set_post_status(post, PostStatus.CANCELLED) is False

    def test_set_post_status_rejects_leaving_terminal_state(self, post_factory):
        post = post_factory(status=PostStatus.EXPIRED)
        with pytest.raises(lifecycle.InvalidStatusTransitionError) as exc_info:
            lifecycle.set_post_status(post, PostStatus.ACTIVE)

        assert exc_info.value.current_status == PostStatus.EXPIRED
        assert post.status == PostStatus.EXPIRED


class TestAddApplication:
    def test_appends_pending_application(self, post_factory):
        post = post_factory()
        tutor_id = uuid4()
        application = lifecycle.build_application(tutor_id, cover_letter="Hello")

        lifecycle.add_application(post, application)

        assert len(post.applications) == 1
        stored = post.applications[0]
        assert stored["tutor_id"] == str(tutor_id)
        assert stored["status"] == "pending"
        assert lifecycle.find_application_by_tutor(post, tutor_id) is stored

    def test_refuses_non_active_post(self, post_factory, application_factory):
        post = post_factory(status=PostStatus.FILLED)

        with pytest.raises(lifecycle.PostNotActiveError):
            lifecycle.add_application(post, application_factory())

        assert post.applications == []


class TestAcceptApplication:
    """Tests for accept_application."""

    def test_accept_fills_post_and_rejects_pending_siblings(
        self, post_factory, application_factory
    ):
        """Accepting A rejects pending B and leaves already rejected C as is."""
        a = application_factory()
        b = application_factory()
        c = application_factory(status=ApplicationStatus.REJECTED)
        post = post_factory(applications=[a, b, c])

        changed = lifecycle.accept_application(post, a["id"])

        statuses = {app["id"]: app["status"] for app in post.applications}
        assert statuses == {a["id"]: "accepted", b["id"]: "rejected", c["id"]: "rejected"}
        assert post.status == PostStatus.FILLED
        assert post.selected_tutor_id == UUID(a["tutor_id"])
        assert [app["id"] for app in changed] == [a["id"], b["id"]]

    def test_withdrawn_sibling_is_left_alone(self, post_factory, application_factory):
        a = application_factory()
        w = application_factory(status=ApplicationStatus.WITHDRAWN)
        post = post_factory(applications=[w, a])

        lifecycle.accept_application(post, a["id"])

        assert lifecycle.find_application(post, w["id"])["status"] == "withdrawn"

    def test_at_most_one_accepted_application(self, post_factory, application_factory):
        a = application_factory()
        b = application_factory()
        post = post_factory(applications=[a, b])

        lifecycle.accept_application(post, a["id"])
        with pytest.raises(lifecycle.PostNotActiveError):
            lifecycle.accept_application(post, b["id"])

        accepted = [app for app in post.applications if app["status"] == "accepted"]
        assert len(accepted) == 1
        assert post.selected_tutor_id == UUID(a["tutor_id"])

    def test_accepting_accepted_application_is_noop(self, post_factory, application_factory):
        a = application_factory()
        post = post_factory(applications=[a])
        lifecycle.accept_application(post, a["id"])
        before = [dict(app) for app in post.applications]

        assert lifecycle.accept_application(post, a["id"]) == []
        assert post.applications == before
        assert post.status == PostStatus.FILLED

    def test_accept_on_cancelled_post_is_refused(self, post_factory, application_factory):
        a = application_factory()
        post = post_factory(status=PostStatus.CANCELLED, applications=[a])

        with pytest.raises(lifecycle.PostNotActiveError):
            lifecycle.accept_application(post, a["id"])

        assert post.selected_tutor_id is None
        assert post.applications[0]["status"] == "pending"

    def test_accept_rejected_application_is_invalid(self, post_factory, application_factory):
        r = application_factory(status=ApplicationStatus.REJECTED)
        post = post_factory(applications=[r])

        with pytest.raises(lifecycle.InvalidStatusTransitionError):
            lifecycle.accept_application(post, r["id"])

        assert post.status == PostStatus.ACTIVE

    def test_unknown_application(self, post_factory):
        post = post_factory()
        with pytest.raises(ValueError):
            lifecycle.accept_application(post, str(uuid4()))

    def test_mutation_assigns_new_list(self, post_factory, application_factory):
        """JSONB changes are only tracked when a new list is assigned."""
        a = application_factory()
        original = [a]
        post = post_factory(applications=original)

        lifecycle.accept_application(post, a["id"])

        assert post.applications is not original
        assert original[0]["status"] == "pending"


class TestRejectAndWithdraw:
    def test_reject_touches_only_target(self, post_factory, application_factory):
        a = application_factory()
        b = application_factory()
        post = post_factory(applications=[a, b])

        changed = lifecycle.reject_application(post, a["id"])

        assert changed["status"] == "rejected"
        assert lifecycle.find_application(post, b["id"])["status"] == "pending"
        assert post.status == PostStatus.ACTIVE
        assert post.selected_tutor_id is None

    def test_reject_twice_is_noop(self, post_factory, application_factory):
        a = application_factory(status=ApplicationStatus.REJECTED)
        post = post_factory(applications=[a])

        assert lifecycle.reject_application(post, a["id"]) is None

    def test_withdraw_pending(self, post_factory, application_factory):
        a = application_factory()
        post = post_factory(applications=[a])

        changed = lifecycle.withdraw_application(post, a["id"])

        assert changed["status"] == "withdrawn"

    def test_withdraw_accepted_is_invalid(self, post_factory, application_factory):
        a = application_factory(status=ApplicationStatus.ACCEPTED)
        post = post_factory(applications=[a])

        with pytest.raises(lifecycle.InvalidStatusTransitionError):
            lifecycle.withdraw_application(post, a["id"])


class TestExpiry:
    def test_active_post_past_expiry(self, post_factory):
        post = post_factory(expires_at=datetime.now(UTC) - timedelta(minutes=1))
        assert lifecycle.is_past_expiry(post)

    def test_future_expiry(self, post_factory):
        assert not lifecycle.is_past_expiry(post_factory())

    def test_only_active_posts_expire(self, post_factory):
        post = post_factory(
            status=PostStatus.FILLED,
            expires_at=datetime.now(UTC) - timedelta(days=1),
        )
        assert not lifecycle.is_past_expiry(post)
