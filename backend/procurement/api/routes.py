from fastapi import APIRouter

from .routers import (
    admin_users_router,
    auth_profile_router,
    health_router,
    pengadaan_router,
    permission_requests_router,
)

# API Router
router = APIRouter()
router.include_router(health_router)
router.include_router(auth_profile_router)
router.include_router(permission_requests_router)
router.include_router(pengadaan_router)
router.include_router(admin_users_router)
