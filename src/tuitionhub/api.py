from fastapi import APIRouter

from tuitionhub.modules.auth import router as auth_router
from tuitionhub.modules.tuition_posts import router as tuition_posts_router
from tuitionhub.modules.tutors import router as tutors_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(tutors_router, prefix="/tutors", tags=["Tutors"])

api_router.include_router(
    tuition_posts_router, prefix="/tuition-posts", tags=["Tuition Posts"]
)
