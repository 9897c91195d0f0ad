"""
Tests for the background job registry.
"""

from unittest.mock import AsyncMock

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from tuitionhub.core import scheduler


@pytest.fixture(autouse=True)
def empty_registry():
    scheduler.clear_registry()
    yield
    scheduler.clear_registry()


class TestRegistry:
    def test_registered_jobs_are_listed_before_start(self):
        scheduler.register_job("sweep", AsyncMock(), IntervalTrigger(minutes=5))

        assert scheduler.list_registered_jobs() == [{"job_id": "sweep", "next_run_time": None}]

    @pytest.mark.asyncio
    async def test_trigger_runs_job_and_returns_result(self):
        job = AsyncMock(return_value={"total_expired": 2})
        scheduler.register_job("sweep", job, IntervalTrigger(minutes=5))

        result = await scheduler.trigger_job_manually("sweep")

        job.assert_awaited_once()
        assert result["status"] == "success"
        assert result["result"] == {"total_expired": 2}

    @pytest.mark.asyncio
    async def test_trigger_reports_job_failure(self):
        job = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler.register_job("sweep", job, IntervalTrigger(minutes=5))

        result = await scheduler.trigger_job_manually("sweep")

        assert result["status"] == "error"
        assert result["error"] == "boom"

    @pytest.mark.asyncio
    async def test_trigger_unknown_job(self):
        with pytest.raises(ValueError):
            await scheduler.trigger_job_manually("missing")

    @pytest.mark.asyncio
    async def test_jobs_registered_before_start_are_scheduled(self):
        scheduler.register_job("sweep", AsyncMock(), IntervalTrigger(minutes=5))

        await scheduler.start_scheduler()
        try:
            jobs = scheduler.list_registered_jobs()
            assert jobs[0]["job_id"] == "sweep"
            assert jobs[0]["next_run_time"] is not None
        finally:
            await scheduler.stop_scheduler()

        assert scheduler.get_scheduler() is None
