from __future__ import annotations

import csv
from datetime import datetime, timedelta
import io
import logging
import math
import re
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procurement.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransition,
    NotFoundError,
    ValidationFailure,
    require_text,
)
from procurement.core.permission_lifecycle import MAX_TEXT_LENGTH, PermissionType
from procurement.core.time import isoformat_or_none
from procurement.db.identifiers import PENGADAAN_PREFIX, next_public_id
from procurement.db.models import Pengadaan, PengadaanEditHistory
from procurement.security.authz import GrantLookup, Identity, ensure_can_edit, require_admin

logger = logging.getLogger("procurement.services.pengadaan")

PENGADAAN_STATUSES = (
    "Draft",
    "Submitted",
    "In Review",
    "Approved",
    "Rejected",
    "In Progress",
    "Completed",
    "Cancelled",
)
KATEGORI = ("Barang", "Jasa", "Konstruksi", "Konsultansi")
CURRENCIES = ("IDR", "USD", "EUR", "SGD")
REVIEWABLE_STATUSES = ("Submitted", "In Review")

NUMERIC_FIELDS = ("nilai", "nilai_hps_amount", "nilai_penunjukan_amount")
CURRENCY_FIELDS = ("nilai_hps_currency", "nilai_penunjukan_currency")
REQUIRED_FIELDS = ("nama", "kategori", "deskripsi", "vendor", "nilai", "tanggal", "deadline")
FORM_FIELDS = REQUIRED_FIELDS + (
    "nama_paket",
    "sinergi",
    "barang_jasa",
    "jenis_pengadaan",
    "metode_pengadaan",
    "tahun_anggaran",
    "nilai_hps_currency",
    "nilai_hps_amount",
    "nilai_penunjukan_currency",
    "nilai_penunjukan_amount",
    "kontrak_nomor",
    "kontrak_tanggal",
    "keterangan",
    "detail",
)
SORTABLE_FIELDS = ("created_at", "updated_at", "nama", "tanggal", "deadline", "status", "kategori", "vendor", "id")
EXPORT_COLUMNS = (
    "id",
    "nama",
    "kategori",
    "vendor",
    "nilai",
    "status",
    "tanggal",
    "deadline",
    "nama_paket",
    "tahun_anggaran",
    "nilai_hps_currency",
    "nilai_hps_amount",
    "created_by",
    "submitted_at",
    "created_at",
    "updated_at",
)
RECENT_ACTIVITY_WINDOW = timedelta(days=30)
ID_ALLOCATION_ATTEMPTS = 3

_NON_NUMERIC = re.compile(r"[^0-9.-]+")


def normalize_numeric_string(value: Any) -> str | None:
    """Strip separators and currency symbols, keeping digits, sign and decimal point."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    cleaned = _NON_NUMERIC.sub("", text)
    if cleaned in {"", "-", ".", "-.", ".-"}:
        return None
    return cleaned


def normalize_payload(data: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(data)
    for name in NUMERIC_FIELDS:
        if name not in data:
            continue
        coerced = normalize_numeric_string(data[name])
        if coerced is not None:
            normalized[name] = coerced
        elif data[name] == "":
            normalized[name] = ""
        else:
            normalized.pop(name)
    for name in CURRENCY_FIELDS:
        if isinstance(normalized.get(name), str):
            normalized[name] = normalized[name].strip().upper()
    return normalized


def _validate_payload(data: dict[str, Any]) -> None:
    kategori = data.get("kategori")
    if kategori is not None and kategori not in KATEGORI:
        raise ValidationFailure(f"Kategori must be one of: {', '.join(KATEGORI)}", field="kategori")
    status = data.get("status")
    if status is not None and status not in PENGADAAN_STATUSES:
        raise ValidationFailure(f"Invalid status value: {status}", field="status")
    for name in CURRENCY_FIELDS:
        currency = data.get(name)
        if currency and currency not in CURRENCIES:
            raise ValidationFailure(f"Currency must be one of: {', '.join(CURRENCIES)}", field=name)
    if "nilai" in data and not data["nilai"]:
        raise ValidationFailure("Nilai must be a number", field="nilai")


def history_item(entry: PengadaanEditHistory) -> dict:
    return {
        "user_id": entry.user_id,
        "action": entry.action,
        "changes": entry.changes,
        "reason": entry.reason,
        "timestamp": isoformat_or_none(entry.timestamp),
    }


def pengadaan_item(p: Pengadaan, *, include_history: bool = False) -> dict:
    item: dict[str, Any] = {name: getattr(p, name) for name in FORM_FIELDS}
    item.update(
        {
            "id": p.id,
            "status": p.status,
            "created_by": p.created_by,
            "last_modified_by": p.last_modified_by,
            "is_editable": p.is_editable,
            "submitted_at": isoformat_or_none(p.submitted_at),
            "submitted_by": p.submitted_by,
            "created_at": isoformat_or_none(p.created_at),
            "updated_at": isoformat_or_none(p.updated_at),
        }
    )
    if include_history:
        item["history"] = [history_item(entry) for entry in p.history]
    return item


def _add_history(
    db: Session,
    p: Pengadaan,
    *,
    user_id: str,
    action: str,
    now: datetime,
    changes: dict | None = None,
    reason: str | None = None,
) -> None:
    db.add(
        PengadaanEditHistory(
            pengadaan_id=p.id,
            user_id=user_id,
            action=action,
            changes=changes,
            reason=reason,
            timestamp=now,
        )
    )


def get_pengadaan_record(db: Session, pengadaan_id: str) -> Pengadaan:
    p = db.get(Pengadaan, pengadaan_id)
    if not p:
        raise NotFoundError("Pengadaan not found")
    return p


def create_pengadaan(db: Session, *, data: dict[str, Any], actor: Identity, now: datetime) -> Pengadaan:
    payload = normalize_payload({k: v for k, v in data.items() if k in FORM_FIELDS})
    for name in REQUIRED_FIELDS:
        if name not in payload:
            raise ValidationFailure(f"{name} is required", field=name)
    _validate_payload(payload)
    payload["detail"] = payload.get("detail") or {}

    for attempt in range(1, ID_ALLOCATION_ATTEMPTS + 1):
        p = Pengadaan(
            id=next_public_id(db, Pengadaan, *PENGADAAN_PREFIX),
            created_by=actor.user_id,
            last_modified_by=actor.user_id,
            is_editable=True,
            status="Draft",
            created_at=now,
            updated_at=now,
            **payload,
        )
        db.add(p)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.warning("Pengadaan id collision on attempt %s, retrying", attempt)
            continue
        _add_history(db, p, user_id=actor.user_id, action="created", now=now)
        db.commit()
        db.refresh(p)
        logger.info("Pengadaan created id=%s by user=%s", p.id, actor.user_id)
        return p

    raise ConflictError("Could not allocate a pengadaan id, please retry")


def get_pengadaan(db: Session, pengadaan_id: str) -> dict:
    return pengadaan_item(get_pengadaan_record(db, pengadaan_id), include_history=True)


def _parse_date(value: str, field: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationFailure(f"Invalid date: {value}", field=field) from None


def list_pengadaan(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    status: str | None = None,
    kategori: str | None = None,
    vendor: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationFailure(f"Cannot sort by {sort_by}", field="sort_by")
    if sort_order not in {"asc", "desc"}:
        raise ValidationFailure("Sort order must be asc or desc", field="sort_order")

    conditions = []
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                Pengadaan.nama.ilike(pattern),
                Pengadaan.deskripsi.ilike(pattern),
                Pengadaan.vendor.ilike(pattern),
                Pengadaan.nama_paket.ilike(pattern),
            )
        )
    if status:
        conditions.append(Pengadaan.status == status)
    if kategori:
        conditions.append(Pengadaan.kategori == kategori)
    if vendor:
        conditions.append(Pengadaan.vendor.ilike(f"%{vendor.strip()}%"))
    if date_from:
        conditions.append(Pengadaan.created_at >= _parse_date(date_from, "date_from"))
    if date_to:
        conditions.append(Pengadaan.created_at <= _parse_date(date_to, "date_to"))

    column = getattr(Pengadaan, sort_by)
    ordering = column.asc() if sort_order == "asc" else column.desc()

    total = int(db.scalar(select(func.count()).select_from(Pengadaan).where(*conditions)) or 0)
    rows = db.scalars(
        select(Pengadaan)
        .where(*conditions)
        .order_by(ordering, Pengadaan.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "items": [pengadaan_item(p) for p in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def update_pengadaan(
    db: Session,
    *,
    pengadaan_id: str,
    data: dict[str, Any],
    actor: Identity,
    has_grant: GrantLookup,
    now: datetime,
) -> Pengadaan:
    p = get_pengadaan_record(db, pengadaan_id)
    ensure_can_edit(actor, p, has_grant, PermissionType.EDIT_FORM)

    reason = data.get("reason")
    payload = normalize_payload({k: v for k, v in data.items() if k in FORM_FIELDS or k == "status"})
    if "status" in payload and not actor.is_admin:
        raise ForbiddenError("Only admins can change the status of a pengadaan", field="status")
    for name in REQUIRED_FIELDS:
        if name in payload and payload[name] is None:
            raise ValidationFailure(f"{name} cannot be empty", field=name)
    _validate_payload(payload)

    changed = sorted(name for name, value in payload.items() if getattr(p, name) != value)
    for name in changed:
        setattr(p, name, payload[name])
    p.last_modified_by = actor.user_id
    p.updated_at = now
    _add_history(
        db,
        p,
        user_id=actor.user_id,
        action="updated",
        now=now,
        changes={"fields": changed},
        reason=reason,
    )
    db.commit()
    db.refresh(p)
    logger.info("Pengadaan updated id=%s by user=%s fields=%s", p.id, actor.user_id, changed)
    return p


def delete_pengadaan(db: Session, *, pengadaan_id: str, actor: Identity, has_grant: GrantLookup) -> None:
    p = get_pengadaan_record(db, pengadaan_id)
    ensure_can_edit(actor, p, has_grant, PermissionType.DELETE_FORM)
    db.delete(p)
    db.commit()
    logger.info("Pengadaan deleted id=%s by user=%s", pengadaan_id, actor.user_id)


def submit_pengadaan(db: Session, *, pengadaan_id: str, actor: Identity, now: datetime) -> Pengadaan:
    p = get_pengadaan_record(db, pengadaan_id)
    if not actor.is_admin and p.created_by != actor.user_id:
        raise ForbiddenError("Only the creator can submit this pengadaan")
    if p.submitted_at is not None:
        raise InvalidTransition("Pengadaan has already been submitted")

    p.submitted_at = now
    p.submitted_by = actor.user_id
    p.is_editable = False
    p.status = "Submitted"
    p.updated_at = now
    _add_history(db, p, user_id=actor.user_id, action="submitted", now=now)
    db.commit()
    db.refresh(p)
    logger.info("Pengadaan submitted id=%s by user=%s", p.id, actor.user_id)
    return p


def review_pengadaan(
    db: Session,
    *,
    pengadaan_id: str,
    admin: Identity,
    decision: str,
    reason: str | None,
    now: datetime,
) -> Pengadaan:
    """
    Admin review of a submitted form. Rejection flags the form editable but
    keeps the submission, so changes still go through an edit grant.
    """
    require_admin(admin)
    p = get_pengadaan_record(db, pengadaan_id)
    if p.status not in REVIEWABLE_STATUSES:
        raise InvalidTransition("Only submitted pengadaan can be reviewed")

    if decision == "approve":
        note = (reason or "").strip() or None
        p.status = "Approved"
        action = "approved"
    elif decision == "reject":
        note = require_text(
            reason, "reason", "Reason is required when rejecting a pengadaan", max_length=MAX_TEXT_LENGTH
        )
        p.status = "Rejected"
        p.is_editable = True
        action = "rejected"
    else:
        raise ValidationFailure("Decision must be approve or reject", field="decision")

    p.last_modified_by = admin.user_id
    p.updated_at = now
    _add_history(db, p, user_id=admin.user_id, action=action, now=now, reason=note)
    db.commit()
    db.refresh(p)
    logger.info("Pengadaan %s id=%s by admin=%s", action, p.id, admin.user_id)
    return p


def search_pengadaan(db: Session, *, term: str, limit: int = 10) -> list[dict]:
    term = (term or "").strip()
    if not term:
        raise ValidationFailure("Search term is required", field="q")
    pattern = f"%{term}%"
    rows = db.scalars(
        select(Pengadaan)
        .where(
            or_(
                Pengadaan.nama.ilike(pattern),
                Pengadaan.deskripsi.ilike(pattern),
                Pengadaan.vendor.ilike(pattern),
                Pengadaan.nama_paket.ilike(pattern),
            )
        )
        .order_by(Pengadaan.created_at.desc(), Pengadaan.id.desc())
        .limit(limit)
    ).all()
    return [pengadaan_item(p) for p in rows]


def _count_by(db: Session, column) -> dict[str, int]:
    rows = db.execute(select(column, func.count()).group_by(column).order_by(func.count().desc())).all()
    return {str(value): int(count) for value, count in rows}


def _total_nilai(db: Session) -> dict[str, float]:
    totals = {"idr": 0.0, "usd": 0.0}
    rows = db.execute(select(Pengadaan.nilai_hps_currency, Pengadaan.nilai_hps_amount)).all()
    for currency, amount in rows:
        key = (currency or "").lower()
        if key not in totals:
            continue
        cleaned = normalize_numeric_string(amount)
        try:
            totals[key] += float(cleaned) if cleaned else 0.0
        except ValueError:
            logger.debug("Skipping unparseable HPS amount %r", amount)
    return totals


def pengadaan_stats(db: Session, now: datetime) -> dict:
    since = now - RECENT_ACTIVITY_WINDOW

    def count(*conditions) -> int:
        return int(db.scalar(select(func.count()).select_from(Pengadaan).where(*conditions)) or 0)

    return {
        "total": count(),
        "by_status": _count_by(db, Pengadaan.status),
        "by_kategori": _count_by(db, Pengadaan.kategori),
        "total_nilai": _total_nilai(db),
        "recent_activity": {
            "created": count(Pengadaan.created_at >= since),
            "updated": count(Pengadaan.updated_at >= since),
            "completed": count(Pengadaan.status == "Completed", Pengadaan.updated_at >= since),
        },
    }


def export_pengadaan(db: Session, fmt: str = "json") -> list[dict] | str:
    if fmt not in {"json", "csv"}:
        raise ValidationFailure("Format must be json or csv", field="format")

    rows = db.scalars(select(Pengadaan).order_by(Pengadaan.created_at.asc(), Pengadaan.id.asc())).all()
    items = [pengadaan_item(p) for p in rows]
    logger.info("Exporting %s pengadaan as %s", len(items), fmt)
    if fmt == "json":
        return items

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, extrasaction="ignore")
    writer.writeheader()
    for item in items:
        writer.writerow({name: "" if item.get(name) is None else item[name] for name in EXPORT_COLUMNS})
    return buffer.getvalue()
