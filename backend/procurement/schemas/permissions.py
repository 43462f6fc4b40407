from __future__ import annotations

from pydantic import BaseModel, Field


class PermissionRequestCreate(BaseModel):
    pengadaan_id: str
    permission_type: str | None = None
    reason: str


class PermissionRespond(BaseModel):
    status: str
    response: str | None = None


class PermissionBulkRespond(BaseModel):
    permission_ids: list[str] = Field(min_length=1)
    status: str
    response: str | None = None


class PermissionRevoke(BaseModel):
    reason: str


class UserSummary(BaseModel):
    id: str
    username: str
    email: str
    first_name: str
    last_name: str


class PengadaanSummary(BaseModel):
    id: str
    nama: str


class PermissionItem(BaseModel):
    id: str
    user_id: str
    admin_id: str | None
    pengadaan_id: str
    permission_type: str
    status: str
    reason: str
    admin_response: str | None
    requested_at: str | None
    responded_at: str | None
    expires_at: str | None
    is_expired: bool
    created_at: str | None
    updated_at: str | None


class PermissionWithRequester(PermissionItem):
    """Pending-queue entry: who asked, and for which record."""
    user: UserSummary | None = None
    pengadaan: PengadaanSummary | None = None


class PermissionWithRequesterAndAdmin(PermissionItem):
    """Per-record history entry: who asked and who answered."""
    user: UserSummary | None = None
    admin: UserSummary | None = None


class PermissionDetail(PermissionItem):
    user: UserSummary | None = None
    admin: UserSummary | None = None
    pengadaan: PengadaanSummary | None = None


class PermissionPage(BaseModel):
    items: list[PermissionItem]
    total: int
    page: int
    limit: int
    total_pages: int


class PendingPermissionPage(PermissionPage):
    items: list[PermissionWithRequester]


class PengadaanPermissionPage(PermissionPage):
    items: list[PermissionWithRequesterAndAdmin]


class EditPermissionCheck(BaseModel):
    has_permission: bool
    is_admin: bool


class BulkRespondError(BaseModel):
    permission_id: str
    error: str


class BulkRespondResult(BaseModel):
    successful: int
    failed: int
    results: list[PermissionItem]
    errors: list[BulkRespondError]


class SweepError(BaseModel):
    permission_id: str
    error: str


class CleanupResult(BaseModel):
    cleaned_count: int
    failed: int
    errors: list[SweepError]


class PermissionStats(BaseModel):
    total: int
    by_status: dict[str, int]
    pending: int
    active_grants: int
