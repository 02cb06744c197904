"""
API v1 routes.
"""

from fastapi import APIRouter

from agora.api.v1 import admin, auth, authorize

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Identity"])
router.include_router(authorize.router, prefix="/authorize", tags=["Authorization"])
router.include_router(admin.router, prefix="/admin", tags=["Administration"])
