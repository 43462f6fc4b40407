from .auth_profile import router as auth_profile_router
from .permission_requests import router as permission_requests_router
from .pengadaan import router as pengadaan_router
from .admin_users import router as admin_users_router
from .health import router as health_router

__all__ = [
	"auth_profile_router",
	"permission_requests_router",
	"pengadaan_router",
	"admin_users_router",
	"health_router",
]
