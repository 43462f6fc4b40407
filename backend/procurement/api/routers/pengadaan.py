from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from procurement.core.config import get_settings
from procurement.core.time import utcnow
from procurement.db.db import get_db
from procurement.schemas.pengadaan import (
    PengadaanCreate,
    PengadaanItem,
    PengadaanPage,
    PengadaanReview,
    PengadaanStats,
    PengadaanUpdate,
)
from procurement.security.authz import Identity
from procurement.security.deps import get_current_admin, get_current_identity
from procurement.services import pengadaan as records
from procurement.services.edit_permissions import grant_lookup

router = APIRouter(tags=["pengadaan"])
_settings = get_settings()

DEFAULT_LIMIT = _settings.default_page_limit
MAX_LIMIT = _settings.max_page_limit


@router.get("/pengadaan", response_model=PengadaanPage)
def list_pengadaan(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    search: str | None = None,
    status: str | None = None,
    kategori: str | None = None,
    vendor: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    _: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return records.list_pengadaan(
        db,
        page=page,
        limit=limit,
        search=search,
        status=status,
        kategori=kategori,
        vendor=vendor,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.post("/pengadaan", response_model=PengadaanItem, status_code=201)
def create_pengadaan(
    payload: PengadaanCreate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    p = records.create_pengadaan(db, data=payload.model_dump(), actor=identity, now=utcnow())
    return records.pengadaan_item(p, include_history=True)


@router.get("/pengadaan/stats", response_model=PengadaanStats)
def pengadaan_stats(
    _: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return records.pengadaan_stats(db, utcnow())


@router.get("/pengadaan/search", response_model=list[PengadaanItem])
def search_pengadaan(
    q: str = Query(min_length=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    _: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return records.search_pengadaan(db, term=q, limit=limit)


@router.get("/pengadaan/export")
def export_pengadaan(
    format: str = "json",
    _: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    exported = records.export_pengadaan(db, format)
    if format == "csv":
        return Response(
            content=exported,
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="pengadaan.csv"'},
        )
    return {"items": exported, "total": len(exported)}


@router.get("/pengadaan/{pengadaan_id}", response_model=PengadaanItem)
def get_pengadaan(
    pengadaan_id: str,
    _: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return records.get_pengadaan(db, pengadaan_id)


@router.put("/pengadaan/{pengadaan_id}", response_model=PengadaanItem)
def update_pengadaan(
    pengadaan_id: str,
    payload: PengadaanUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    now = utcnow()
    p = records.update_pengadaan(
        db,
        pengadaan_id=pengadaan_id,
        data=payload.model_dump(exclude_unset=True),
        actor=identity,
        has_grant=grant_lookup(db, now),
        now=now,
    )
    return records.pengadaan_item(p, include_history=True)


@router.delete("/pengadaan/{pengadaan_id}", status_code=204)
def delete_pengadaan(
    pengadaan_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    records.delete_pengadaan(
        db,
        pengadaan_id=pengadaan_id,
        actor=identity,
        has_grant=grant_lookup(db, utcnow()),
    )
    return Response(status_code=204)


@router.post("/pengadaan/{pengadaan_id}/submit", response_model=PengadaanItem)
def submit_pengadaan(
    pengadaan_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    p = records.submit_pengadaan(db, pengadaan_id=pengadaan_id, actor=identity, now=utcnow())
    return records.pengadaan_item(p, include_history=True)


@router.post("/admin/pengadaan/{pengadaan_id}/review", response_model=PengadaanItem)
def review_pengadaan(
    pengadaan_id: str,
    payload: PengadaanReview,
    admin: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    p = records.review_pengadaan(
        db,
        pengadaan_id=pengadaan_id,
        admin=admin,
        decision=payload.decision,
        reason=payload.reason,
        now=utcnow(),
    )
    return records.pengadaan_item(p, include_history=True)
