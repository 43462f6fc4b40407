from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from procurement.core.config import get_settings
from procurement.core.time import utcnow
from procurement.db.db import get_db
from procurement.schemas.permissions import (
    BulkRespondResult,
    CleanupResult,
    EditPermissionCheck,
    PendingPermissionPage,
    PengadaanPermissionPage,
    PermissionBulkRespond,
    PermissionDetail,
    PermissionItem,
    PermissionPage,
    PermissionRequestCreate,
    PermissionRespond,
    PermissionRevoke,
    PermissionStats,
)
from procurement.security.authz import Identity
from procurement.security.deps import get_current_admin, get_current_identity
from procurement.services import edit_permissions as workflow

router = APIRouter(tags=["permissions"])
logger = logging.getLogger("procurement.api.permissions")
_settings = get_settings()

DEFAULT_LIMIT = _settings.default_page_limit
MAX_LIMIT = _settings.max_page_limit


@router.post("/permission-requests", response_model=PermissionItem, status_code=201)
def create_permission_request(
    payload: PermissionRequestCreate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    now = utcnow()
    permission = workflow.request_permission(
        db,
        user_id=identity.user_id,
        pengadaan_id=payload.pengadaan_id,
        permission_type=payload.permission_type,
        reason=payload.reason,
        now=now,
    )
    return permission.to_response(now)


@router.get("/permission-requests/mine", response_model=PermissionPage)
def list_my_permission_requests(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return workflow.list_user_permissions(db, user_id=identity.user_id, page=page, limit=limit, now=utcnow())


@router.get("/permission-requests/check/{pengadaan_id}", response_model=EditPermissionCheck)
def check_edit_permission(
    pengadaan_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    has_permission = identity.is_admin or workflow.has_edit_permission(
        db, identity.user_id, pengadaan_id, utcnow()
    )
    return {"has_permission": has_permission, "is_admin": identity.is_admin}


@router.get("/permission-requests/{permission_id}", response_model=PermissionDetail)
def get_permission_request(
    permission_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return workflow.get_permission(db, permission_id=permission_id, viewer=identity, now=utcnow())


@router.get("/admin/permission-requests/pending", response_model=PendingPermissionPage)
def list_pending_permission_requests(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    _: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return workflow.list_pending_requests(db, page=page, limit=limit, now=utcnow())


@router.get("/admin/permission-requests/stats", response_model=PermissionStats)
def permission_request_stats(
    _: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return workflow.permission_stats(db, utcnow())


@router.get("/admin/pengadaan/{pengadaan_id}/permission-requests", response_model=PengadaanPermissionPage)
def list_pengadaan_permission_requests(
    pengadaan_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    _: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return workflow.list_pengadaan_permissions(
        db, pengadaan_id=pengadaan_id, page=page, limit=limit, now=utcnow()
    )


@router.post("/admin/permission-requests/bulk-respond", response_model=BulkRespondResult)
def bulk_respond_permission_requests(
    payload: PermissionBulkRespond,
    admin: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return workflow.bulk_respond(
        db,
        permission_ids=payload.permission_ids,
        admin_id=admin.user_id,
        status=payload.status,
        response=payload.response,
        now=utcnow(),
        ttl=_settings.permission_grant_ttl,
    )


@router.post("/admin/permission-requests/cleanup", response_model=CleanupResult)
def cleanup_expired_permission_requests(
    admin: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    result = workflow.cleanup_expired_permissions(db, utcnow())
    logger.info("Manual sweep by admin=%s cleaned=%s failed=%s", admin.user_id, result.cleaned_count, result.failed)
    return {
        "cleaned_count": result.cleaned_count,
        "failed": result.failed,
        "errors": [{"permission_id": e.permission_id, "error": e.error} for e in result.errors],
    }


@router.post("/admin/permission-requests/{permission_id}/respond", response_model=PermissionItem)
def respond_to_permission_request(
    permission_id: str,
    payload: PermissionRespond,
    admin: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    now = utcnow()
    permission = workflow.respond_to_request(
        db,
        permission_id=permission_id,
        admin_id=admin.user_id,
        status=payload.status,
        response=payload.response,
        now=now,
        ttl=_settings.permission_grant_ttl,
    )
    return permission.to_response(now)


@router.post("/admin/permission-requests/{permission_id}/revoke", response_model=PermissionItem)
def revoke_permission_request(
    permission_id: str,
    payload: PermissionRevoke,
    admin: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    now = utcnow()
    permission = workflow.revoke_permission(
        db,
        permission_id=permission_id,
        admin_id=admin.user_id,
        reason=payload.reason,
        now=now,
    )
    return permission.to_response(now)
