from .auth import (
    TokenResponse,
    LoginRequest,
    RegisterRequest,
    UserItem,
    UserPage,
    UserRoleUpdate,
    UserStatusUpdate,
)
from .permissions import (
    PermissionRequestCreate,
    PermissionRespond,
    PermissionBulkRespond,
    PermissionRevoke,
    PermissionItem,
    PermissionWithRequester,
    PermissionWithRequesterAndAdmin,
    PermissionDetail,
    PermissionPage,
    EditPermissionCheck,
    BulkRespondResult,
    CleanupResult,
    PermissionStats,
)
from .pengadaan import (
    PengadaanCreate,
    PengadaanUpdate,
    PengadaanReview,
    PengadaanItem,
    PengadaanPage,
    PengadaanStats,
)

__all__ = [
    "TokenResponse",
    "LoginRequest",
    "RegisterRequest",
    "UserItem",
    "UserPage",
    "UserRoleUpdate",
    "UserStatusUpdate",
    "PermissionRequestCreate",
    "PermissionRespond",
    "PermissionBulkRespond",
    "PermissionRevoke",
    "PermissionItem",
    "PermissionWithRequester",
    "PermissionWithRequesterAndAdmin",
    "PermissionDetail",
    "PermissionPage",
    "EditPermissionCheck",
    "BulkRespondResult",
    "CleanupResult",
    "PermissionStats",
    "PengadaanCreate",
    "PengadaanUpdate",
    "PengadaanReview",
    "PengadaanItem",
    "PengadaanPage",
    "PengadaanStats",
]
