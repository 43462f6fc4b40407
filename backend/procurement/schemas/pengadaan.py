from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class PengadaanFields(BaseModel):
    nama_paket: str | None = Field(default=None, max_length=300)
    sinergi: str | None = None
    barang_jasa: str | None = None
    jenis_pengadaan: str | None = None
    metode_pengadaan: str | None = None
    tahun_anggaran: str | None = None
    nilai_hps_currency: str | None = None
    nilai_hps_amount: str | None = None
    nilai_penunjukan_currency: str | None = None
    nilai_penunjukan_amount: str | None = None
    kontrak_nomor: str | None = None
    kontrak_tanggal: str | None = None
    keterangan: str | None = Field(default=None, max_length=500)
    detail: dict[str, Any] | None = None


class PengadaanCreate(PengadaanFields):
    """Request model for creating a procurement record."""
    nama: str = Field(min_length=1, max_length=200)
    kategori: str
    deskripsi: str = Field(min_length=1, max_length=1000)
    vendor: str = Field(min_length=1, max_length=200)
    nilai: str
    tanggal: str
    deadline: str


class PengadaanUpdate(PengadaanFields):
    """Request model for partial updates; only fields sent are applied."""
    nama: str | None = Field(default=None, min_length=1, max_length=200)
    kategori: str | None = None
    deskripsi: str | None = Field(default=None, min_length=1, max_length=1000)
    vendor: str | None = Field(default=None, min_length=1, max_length=200)
    nilai: str | None = None
    status: str | None = None
    tanggal: str | None = None
    deadline: str | None = None
    reason: str | None = Field(default=None, max_length=500)


class PengadaanReview(BaseModel):
    decision: Literal["approve", "reject"]
    reason: str | None = None


class PengadaanHistoryItem(BaseModel):
    user_id: str
    action: str
    changes: dict[str, Any] | None
    reason: str | None
    timestamp: str | None


class PengadaanItem(PengadaanFields):
    id: str
    created_by: str
    last_modified_by: str | None
    is_editable: bool
    submitted_at: str | None
    submitted_by: str | None
    nama: str
    kategori: str
    deskripsi: str
    vendor: str
    nilai: str
    status: str
    tanggal: str
    deadline: str
    created_at: str | None
    updated_at: str | None
    history: list[PengadaanHistoryItem] = []


class PengadaanPage(BaseModel):
    items: list[PengadaanItem]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


class RecentActivity(BaseModel):
    created: int
    updated: int
    completed: int


class PengadaanStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_kategori: dict[str, int]
    total_nilai: dict[str, float]
    recent_activity: RecentActivity
