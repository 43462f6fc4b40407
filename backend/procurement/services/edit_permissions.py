from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from procurement.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ProcurementError,
    ValidationFailure,
    require_text,
)
from procurement.core.permission_lifecycle import (
    DEFAULT_GRANT_TTL,
    MAX_TEXT_LENGTH,
    RESPONSE_STATUSES,
    PermissionStatus,
    PermissionType,
    coerce_type,
)
from procurement.db import permission_store as store
from procurement.db.models import EditPermission, Pengadaan, User
from procurement.security.authz import GrantLookup, Identity

logger = logging.getLogger("procurement.services.edit_permissions")

ACTIVE_PERMISSION_MESSAGE = "You already have active permission for this form"
_RESPONSES = {s.value: s for s in RESPONSE_STATUSES}


@dataclass(frozen=True)
class SweepFailure:
    permission_id: str
    error: str


@dataclass(frozen=True)
class SweepResult:
    cleaned_count: int
    errors: list[SweepFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)


def user_summary(user: User | None) -> dict | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


def pengadaan_summary(pengadaan: Pengadaan | None) -> dict | None:
    if pengadaan is None:
        return None
    return {"id": pengadaan.id, "nama": pengadaan.nama}


def permission_with_requester(db: Session, permission: EditPermission, now: datetime) -> dict:
    return {
        **permission.to_response(now),
        "user": user_summary(db.get(User, permission.user_id)),
        "pengadaan": pengadaan_summary(db.get(Pengadaan, permission.pengadaan_id)),
    }


def permission_with_requester_and_admin(db: Session, permission: EditPermission, now: datetime) -> dict:
    admin = db.get(User, permission.admin_id) if permission.admin_id else None
    return {
        **permission.to_response(now),
        "user": user_summary(db.get(User, permission.user_id)),
        "admin": user_summary(admin),
    }


def permission_detail(db: Session, permission: EditPermission, now: datetime) -> dict:
    return {
        **permission_with_requester_and_admin(db, permission, now),
        "pengadaan": pengadaan_summary(db.get(Pengadaan, permission.pengadaan_id)),
    }


def _page(items: list, total: int, page: int, limit: int, total_pages: int) -> dict:
    return {"items": items, "total": total, "page": page, "limit": limit, "total_pages": total_pages}


def _require_admin_account(db: Session, admin_id: str) -> User:
    admin = db.get(User, admin_id)
    if not admin:
        raise NotFoundError("Admin not found")
    if not admin.is_admin:
        raise ForbiddenError("Access denied. Admin role required.")
    return admin


def request_permission(
    db: Session,
    *,
    user_id: str,
    pengadaan_id: str,
    permission_type: PermissionType | str | None,
    reason: str | None,
    now: datetime,
) -> EditPermission:
    if not db.get(User, user_id):
        raise NotFoundError("User not found")
    if not db.get(Pengadaan, pengadaan_id):
        raise NotFoundError("Pengadaan not found")

    ptype = coerce_type(permission_type)
    note = require_text(reason, "reason", "Reason is required", max_length=MAX_TEXT_LENGTH)

    if store.find_pending(db, user_id, pengadaan_id, ptype) is not None:
        raise ConflictError(store.DUPLICATE_PENDING_MESSAGE)
    if store.has_active_permission(db, user_id, pengadaan_id, ptype, now):
        raise ConflictError(ACTIVE_PERMISSION_MESSAGE)

    permission = store.insert_pending(
        db,
        user_id=user_id,
        pengadaan_id=pengadaan_id,
        permission_type=ptype,
        reason=note,
        now=now,
    )
    logger.info(
        "Permission requested id=%s user=%s pengadaan=%s type=%s",
        permission.id,
        user_id,
        pengadaan_id,
        ptype.value,
    )
    return permission


def _response_status(status: str | None) -> PermissionStatus:
    target = _RESPONSES.get((status or "").strip().lower())
    if target is None:
        raise ValidationFailure("Status must be either approved or rejected", field="status")
    return target


def respond_to_request(
    db: Session,
    *,
    permission_id: str,
    admin_id: str,
    status: str,
    response: str | None = None,
    now: datetime,
    ttl: timedelta = DEFAULT_GRANT_TTL,
) -> EditPermission:
    _require_admin_account(db, admin_id)

    target = _response_status(status)

    permission = store.get_permission(db, permission_id)
    if not permission:
        raise NotFoundError("Permission request not found")

    if target is PermissionStatus.APPROVED:
        if permission.status == PermissionStatus.PENDING.value and store.has_active_permission(
            db,
            permission.user_id,
            permission.pengadaan_id,
            PermissionType(permission.permission_type),
            now,
        ):
            raise ConflictError("User already has active permission for this form")
        permission = store.approve(db, permission, admin_id=admin_id, response=response, now=now, ttl=ttl)
    else:
        permission = store.reject(db, permission, admin_id=admin_id, response=response, now=now)

    logger.info("Permission %s %s by admin=%s", permission.id, permission.status, admin_id)
    return permission


def has_edit_permission(
    db: Session,
    user_id: str,
    pengadaan_id: str,
    now: datetime,
    permission_type: PermissionType = PermissionType.EDIT_FORM,
) -> bool:
    return store.has_active_permission(db, user_id, pengadaan_id, permission_type, now)


def grant_lookup(db: Session, now: datetime) -> GrantLookup:
    """Bind the ledger read used by the authorization gate to a session and instant."""

    def _has_grant(user_id: str, pengadaan_id: str, permission_type: PermissionType) -> bool:
        return has_edit_permission(db, user_id, pengadaan_id, now, permission_type)

    return _has_grant


def revoke_permission(
    db: Session,
    *,
    permission_id: str,
    admin_id: str,
    reason: str | None,
    now: datetime,
) -> EditPermission:
    _require_admin_account(db, admin_id)
    permission = store.get_permission(db, permission_id)
    if not permission:
        raise NotFoundError("Permission not found")

    permission = store.revoke(db, permission, reason=reason, now=now)
    logger.info("Permission %s revoked by admin=%s", permission.id, admin_id)
    return permission


def cleanup_expired_permissions(db: Session, now: datetime) -> SweepResult:
    """
    Demote every approved grant whose expiry has passed.

    One batch update normally does the work. If it fails, each stale entry is
    retried on its own so a single bad row cannot block the rest; those
    failures are collected rather than raised.
    """
    try:
        cleaned = store.expire_stale(db, now)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Batch expiry failed, falling back to per-entry updates")
    else:
        if cleaned:
            logger.info("Expired %s stale permission grants", cleaned)
        return SweepResult(cleaned_count=cleaned)

    cleaned = 0
    errors: list[SweepFailure] = []
    for permission_id in store.stale_ids(db, now):
        try:
            if store.expire_one(db, permission_id, now):
                cleaned += 1
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Failed to expire permission %s: %s", permission_id, exc)
            errors.append(SweepFailure(permission_id, str(exc)))

    logger.info("Expired %s stale permission grants, %s failed", cleaned, len(errors))
    return SweepResult(cleaned_count=cleaned, errors=errors)


def get_permission(db: Session, *, permission_id: str, viewer: Identity, now: datetime) -> dict:
    permission = store.get_permission(db, permission_id)
    if not permission:
        raise NotFoundError("Permission request not found")
    if not viewer.is_admin and permission.user_id != viewer.user_id:
        raise ForbiddenError("Access denied")
    return permission_detail(db, permission, now)


def list_user_permissions(db: Session, *, user_id: str, page: int, limit: int, now: datetime) -> dict:
    rows, total, total_pages = store.list_for_user(db, user_id, page=page, limit=limit)
    return _page([row.to_response(now) for row in rows], total, page, limit, total_pages)


def list_pending_requests(db: Session, *, page: int, limit: int, now: datetime) -> dict:
    rows, total, total_pages = store.list_pending(db, page=page, limit=limit)
    items = [permission_with_requester(db, row, now) for row in rows]
    return _page(items, total, page, limit, total_pages)


def list_pengadaan_permissions(
    db: Session, *, pengadaan_id: str, page: int, limit: int, now: datetime
) -> dict:
    rows, total, total_pages = store.list_for_pengadaan(db, pengadaan_id, page=page, limit=limit)
    items = [permission_with_requester_and_admin(db, row, now) for row in rows]
    return _page(items, total, page, limit, total_pages)


def bulk_respond(
    db: Session,
    *,
    permission_ids: list[str],
    admin_id: str,
    status: str,
    response: str | None = None,
    now: datetime,
    ttl: timedelta = DEFAULT_GRANT_TTL,
) -> dict:
    """Respond to each request independently; one failure never aborts the rest."""
    if not permission_ids:
        raise ValidationFailure("Permission IDs array is required", field="permission_ids")
    if _response_status(status) is PermissionStatus.REJECTED:
        require_text(
            response,
            "response",
            "Response is required when rejecting a request",
            max_length=MAX_TEXT_LENGTH,
        )

    results: list[dict] = []
    errors: list[dict] = []
    for permission_id in permission_ids:
        try:
            permission = respond_to_request(
                db,
                permission_id=permission_id,
                admin_id=admin_id,
                status=status,
                response=response,
                now=now,
                ttl=ttl,
            )
        except ProcurementError as exc:
            errors.append({"permission_id": permission_id, "error": exc.message})
            continue
        results.append(permission.to_response(now))

    logger.info("Bulk respond by admin=%s: %s ok, %s failed", admin_id, len(results), len(errors))
    return {
        "successful": len(results),
        "failed": len(errors),
        "results": results,
        "errors": errors,
    }


def permission_stats(db: Session, now: datetime) -> dict:
    by_status = store.count_by_status(db)
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "pending": by_status[PermissionStatus.PENDING.value],
        "active_grants": store.count_active(db, now),
    }


__all__ = [
    "SweepFailure",
    "SweepResult",
    "request_permission",
    "respond_to_request",
    "has_edit_permission",
    "grant_lookup",
    "revoke_permission",
    "cleanup_expired_permissions",
    "get_permission",
    "list_user_permissions",
    "list_pending_requests",
    "list_pengadaan_permissions",
    "bulk_respond",
    "permission_stats",
]
