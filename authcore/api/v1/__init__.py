"""
API v1 routes.
"""

from fastapi import APIRouter

from authcore.api.v1 import auth, users

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(users.router, prefix="/users", tags=["Users"])
