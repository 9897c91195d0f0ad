"""
Tutors module - Tutor profiles, search and reviews.
"""

from .router import router

__all__ = ["router"]
