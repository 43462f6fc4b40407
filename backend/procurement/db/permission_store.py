"""
Persistence for the edit-permission ledger.

Every status change is a conditional ``UPDATE ... WHERE status = <expected>``;
a write that matches zero rows means another caller got there first.
"""
from __future__ import annotations

from datetime import datetime, timedelta
import logging
import math

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procurement.core.errors import ConflictError
from procurement.core.permission_lifecycle import (
    DEFAULT_GRANT_TTL,
    PermissionStatus,
    PermissionType,
    Transition,
    plan_approval,
    plan_rejection,
    plan_revocation,
)
from procurement.db.identifiers import PERMISSION_PREFIX, next_public_id
from procurement.db.models import EditPermission

logger = logging.getLogger("procurement.db.permission_store")

ID_ALLOCATION_ATTEMPTS = 3
DUPLICATE_PENDING_MESSAGE = "You already have a pending request for this form"
ALREADY_PROCESSED_MESSAGE = "Permission request has already been processed"


def get_permission(db: Session, permission_id: str) -> EditPermission | None:
    return db.get(EditPermission, permission_id)


def _tuple_filter(user_id: str, pengadaan_id: str, permission_type: PermissionType):
    return (
        EditPermission.user_id == user_id,
        EditPermission.pengadaan_id == pengadaan_id,
        EditPermission.permission_type == permission_type.value,
    )


def find_pending(
    db: Session, user_id: str, pengadaan_id: str, permission_type: PermissionType
) -> EditPermission | None:
    return db.scalar(
        select(EditPermission).where(
            *_tuple_filter(user_id, pengadaan_id, permission_type),
            EditPermission.status == PermissionStatus.PENDING.value,
        )
    )


def find_active(
    db: Session, user_id: str, pengadaan_id: str, permission_type: PermissionType, now: datetime
) -> EditPermission | None:
    return db.scalar(
        select(EditPermission)
        .where(
            *_tuple_filter(user_id, pengadaan_id, permission_type),
            EditPermission.status == PermissionStatus.APPROVED.value,
            EditPermission.expires_at > now,
        )
        .order_by(EditPermission.expires_at.desc())
        .limit(1)
    )


def has_active_permission(
    db: Session, user_id: str, pengadaan_id: str, permission_type: PermissionType, now: datetime
) -> bool:
    return find_active(db, user_id, pengadaan_id, permission_type, now) is not None


def insert_pending(
    db: Session,
    *,
    user_id: str,
    pengadaan_id: str,
    permission_type: PermissionType,
    reason: str,
    now: datetime,
) -> EditPermission:
    """
    Insert a new pending entry. The partial unique index on pending tuples
    settles races between concurrent requests for the same form.
    """
    for attempt in range(1, ID_ALLOCATION_ATTEMPTS + 1):
        permission = EditPermission(
            id=next_public_id(db, EditPermission, *PERMISSION_PREFIX),
            user_id=user_id,
            pengadaan_id=pengadaan_id,
            permission_type=permission_type.value,
            status=PermissionStatus.PENDING.value,
            reason=reason,
            requested_at=now,
        )
        db.add(permission)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if find_pending(db, user_id, pengadaan_id, permission_type) is not None:
                raise ConflictError(DUPLICATE_PENDING_MESSAGE) from None
            logger.warning("Permission id collision on attempt %s, retrying", attempt)
            continue
        db.refresh(permission)
        return permission

    raise ConflictError("Could not allocate a permission id, please retry")


def apply_transition(db: Session, permission_id: str, transition: Transition, now: datetime) -> bool:
    """Apply ``transition`` only if the entry is still in its expected status."""
    conditions = [
        EditPermission.id == permission_id,
        EditPermission.status == transition.from_status.value,
    ]
    if transition.require_unexpired:
        conditions.append(EditPermission.expires_at > now)

    result = db.execute(
        update(EditPermission)
        .where(*conditions)
        .values(**transition.values(), updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        return False
    db.commit()
    return True


def _apply_or_conflict(
    db: Session, permission: EditPermission, transition: Transition, now: datetime, message: str
) -> EditPermission:
    if not apply_transition(db, permission.id, transition, now):
        db.refresh(permission)
        raise ConflictError(message)
    db.refresh(permission)
    return permission


def approve(
    db: Session,
    permission: EditPermission,
    *,
    admin_id: str,
    response: str | None,
    now: datetime,
    ttl: timedelta = DEFAULT_GRANT_TTL,
) -> EditPermission:
    transition = plan_approval(permission.status, admin_id=admin_id, response=response, now=now, ttl=ttl)
    return _apply_or_conflict(db, permission, transition, now, ALREADY_PROCESSED_MESSAGE)


def reject(
    db: Session,
    permission: EditPermission,
    *,
    admin_id: str,
    response: str | None,
    now: datetime,
) -> EditPermission:
    transition = plan_rejection(permission.status, admin_id=admin_id, response=response, now=now)
    return _apply_or_conflict(db, permission, transition, now, ALREADY_PROCESSED_MESSAGE)


def revoke(db: Session, permission: EditPermission, *, reason: str | None, now: datetime) -> EditPermission:
    transition = plan_revocation(
        permission.status,
        expires_at=permission.expires_at,
        admin_response=permission.admin_response,
        reason=reason,
        now=now,
    )
    return _apply_or_conflict(db, permission, transition, now, "Permission is not active")


def _stale_conditions(now: datetime) -> tuple:
    return (
        EditPermission.status == PermissionStatus.APPROVED.value,
        EditPermission.expires_at < now,
    )


def expire_stale(db: Session, now: datetime) -> int:
    """Batch-demote every approved grant whose expiry has passed."""
    result = db.execute(
        update(EditPermission)
        .where(*_stale_conditions(now))
        .values(status=PermissionStatus.EXPIRED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return int(result.rowcount or 0)


def stale_ids(db: Session, now: datetime) -> list[str]:
    return list(db.scalars(select(EditPermission.id).where(*_stale_conditions(now))).all())


def expire_one(db: Session, permission_id: str, now: datetime) -> bool:
    result = db.execute(
        update(EditPermission)
        .where(EditPermission.id == permission_id, *_stale_conditions(now))
        .values(status=PermissionStatus.EXPIRED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def paginate(db: Session, stmt, count_stmt, *, page: int, limit: int) -> tuple[list, int, int]:
    """Returns ``(rows, total, total_pages)`` for 1-based ``page``."""
    total = int(db.scalar(count_stmt) or 0)
    rows = db.scalars(stmt.offset((page - 1) * limit).limit(limit)).all()
    total_pages = math.ceil(total / limit) if limit else 0
    return list(rows), total, total_pages


def list_for_user(db: Session, user_id: str, *, page: int, limit: int) -> tuple[list[EditPermission], int, int]:
    stmt = (
        select(EditPermission)
        .where(EditPermission.user_id == user_id)
        .order_by(EditPermission.requested_at.desc(), EditPermission.id.desc())
    )
    count_stmt = select(func.count()).select_from(EditPermission).where(EditPermission.user_id == user_id)
    return paginate(db, stmt, count_stmt, page=page, limit=limit)


def list_pending(db: Session, *, page: int, limit: int) -> tuple[list[EditPermission], int, int]:
    pending = EditPermission.status == PermissionStatus.PENDING.value
    stmt = (
        select(EditPermission)
        .where(pending)
        .order_by(EditPermission.requested_at.desc(), EditPermission.id.desc())
    )
    count_stmt = select(func.count()).select_from(EditPermission).where(pending)
    return paginate(db, stmt, count_stmt, page=page, limit=limit)


def list_for_pengadaan(
    db: Session, pengadaan_id: str, *, page: int, limit: int
) -> tuple[list[EditPermission], int, int]:
    stmt = (
        select(EditPermission)
        .where(EditPermission.pengadaan_id == pengadaan_id)
        .order_by(EditPermission.requested_at.desc(), EditPermission.id.desc())
    )
    count_stmt = (
        select(func.count()).select_from(EditPermission).where(EditPermission.pengadaan_id == pengadaan_id)
    )
    return paginate(db, stmt, count_stmt, page=page, limit=limit)


def count_by_status(db: Session) -> dict[str, int]:
    rows = db.execute(
        select(EditPermission.status, func.count()).group_by(EditPermission.status)
    ).all()
    counts = {status.value: 0 for status in PermissionStatus}
    counts.update({str(status): int(count) for status, count in rows})
    return counts


def count_active(db: Session, now: datetime) -> int:
    return int(
        db.scalar(
            select(func.count())
            .select_from(EditPermission)
            .where(
                EditPermission.status == PermissionStatus.APPROVED.value,
                EditPermission.expires_at > now,
            )
        )
        or 0
    )
