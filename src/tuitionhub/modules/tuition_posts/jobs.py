"""
Tuition Posts Background Jobs

Scheduled task that moves active posts past their expires_at to expired.

Design Principles:
- Idempotent: an expired post is never selected again
- Each post is expired in its own session, so one failure (for example a
  concurrent acceptance winning the version race) doesn't stop the job
- Failures are logged and counted in the job result

Applying to a post also checks expiry, so a post is never open for
applications past its deadline even between two runs.
"""

import functools
import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from apscheduler.triggers.interval import IntervalTrigger

from tuitionhub.core.config import settings
from tuitionhub.core.database import DatabaseManager
from tuitionhub.core.scheduler import register_job
from tuitionhub.modules.tuition_posts import lifecycle, repository
from tuitionhub.modules.tuition_posts.models import PostStatus

logger = logging.getLogger(__name__)

JOB_ID_EXPIRE_POSTS = "tuition_posts_expire_posts"


async def _expire_post(database: DatabaseManager, post_id: UUID, now: datetime) -> bool:
    """
    Expire a single post if it is still active and past expiry.

    Returns:
        True if the post was expired, False if it no longer qualified
    """
    async with database.session() as db:
        post = await repository.get_by_id(db, post_id)
        if post is None or not lifecycle.is_past_expiry(post, now):
            return False

        lifecycle.set_post_status(post, PostStatus.EXPIRED)
        await repository.save(db, post)

    logger.info(f"Expired tuition post {post_id}")
    return True


async def expire_posts(database: DatabaseManager) -> dict[str, Any]:
    """
    Expire every active post whose expires_at has passed.

    Returns:
        Dict with executed_at, total_expired, total_skipped, total_errors
        and the ids of posts that failed
    """
    executed_at = datetime.now(UTC)

    logger.info(f"Starting tuition post expiry job at {executed_at.isoformat()}")

    results: dict[str, Any] = {
        "executed_at": executed_at.isoformat(),
        "total_expired": 0,
        "total_skipped": 0,
        "total_errors": 0,
        "failed": [],
    }

    async with database.session() as db:
        candidates = [post.id for post in await repository.get_expired_active(db, executed_at)]

    logger.info(f"Found {len(candidates)} tuition posts to expire")

    for post_id in candidates:
        try:
            if await _expire_post(database, post_id, executed_at):
                results["total_expired"] += 1
            else:
                results["total_skipped"] += 1
        except Exception as e:
            logger.error(f"Error expiring tuition post {post_id}: {e}", exc_info=True)
            results["failed"].append(str(post_id))
            results["total_errors"] += 1

    logger.info(
        f"Tuition post expiry job completed. "
        f"Expired: {results['total_expired']}, Skipped: {results['total_skipped']}, "
        f"Errors: {results['total_errors']}"
    )

    return results


def register_tuition_post_jobs(database: DatabaseManager) -> None:
    """
    Register the tuition post jobs with the scheduler.

    Call during application startup, before the scheduler is started.
    """
    minutes = settings.post_expiry_sweep_minutes

    register_job(
        job_id=JOB_ID_EXPIRE_POSTS,
        func=functools.partial(expire_posts, database),
        trigger=IntervalTrigger(minutes=minutes),
    )
    logger.info(f"Registered job: {JOB_ID_EXPIRE_POSTS} (interval: {minutes} minutes)")
