"""
Tuition Posts Module

Guardians post tuition jobs; tutors apply; the guardian accepts one
application, which fills the post and rejects the other pending ones.

API Endpoints:
- GET/POST /tuition-posts - List and create posts
- GET /tuition-posts/my/posts, /tuition-posts/my/applications - Dashboards
- GET/PUT /tuition-posts/{id} - Read and update a post
- POST /tuition-posts/{id}/apply - Apply as a tutor
- PUT /tuition-posts/{post_id}/applications/{application_id} - Accept or reject
- POST /tuition-posts/{post_id}/applications/{application_id}/withdraw - Withdraw

Background Jobs (via APScheduler):
- tuition_posts_expire_posts: marks active posts past expires_at as expired
"""

from .jobs import register_tuition_post_jobs
from .router import router

__all__ = ["router", "register_tuition_post_jobs"]
