from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from procurement.core.permission_lifecycle import PermissionStatus, PermissionType, is_expired
from procurement.core.time import ensure_utc, isoformat_or_none, utcnow


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


USER_ROLES = ("user", "admin")
USER_STATUSES = ("active", "inactive", "suspended")


class User(Base):
    """
    Application account. ``role`` gates admin-only operations,
    ``status`` must be ``active`` to authenticate.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    username: Mapped[str] = mapped_column(String(30), unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String, nullable=False)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    role: Mapped[str] = mapped_column(String(10), default="user", nullable=False)
    status: Mapped[str] = mapped_column(String(10), default="active", nullable=False)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    position: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Pengadaan(Base):
    """
    Procurement record. Non-admin editability is decided from
    ``is_editable``, ``created_by`` and ``submitted_at`` plus the permission ledger.
    """
    __tablename__ = "pengadaan"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)

    created_by: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    last_modified_by: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    is_editable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_by: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    nama: Mapped[str] = mapped_column(String(200), nullable=False)
    kategori: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    deskripsi: Mapped[str] = mapped_column(Text, nullable=False)
    vendor: Mapped[str] = mapped_column(String(200), index=True, nullable=False)
    nilai: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[str] = mapped_column(String(20), index=True, default="Draft", nullable=False)
    tanggal: Mapped[str] = mapped_column(String(20), nullable=False)
    deadline: Mapped[str] = mapped_column(String(20), nullable=False)

    nama_paket: Mapped[str | None] = mapped_column(String(300), nullable=True)
    sinergi: Mapped[str | None] = mapped_column(String(100), nullable=True)
    barang_jasa: Mapped[str | None] = mapped_column(String(100), nullable=True)
    jenis_pengadaan: Mapped[str | None] = mapped_column(String(100), nullable=True)
    metode_pengadaan: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tahun_anggaran: Mapped[str | None] = mapped_column(String(10), nullable=True)
    nilai_hps_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    nilai_hps_amount: Mapped[str | None] = mapped_column(String(40), nullable=True)
    nilai_penunjukan_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    nilai_penunjukan_amount: Mapped[str | None] = mapped_column(String(40), nullable=True)
    kontrak_nomor: Mapped[str | None] = mapped_column(String(100), nullable=True)
    kontrak_tanggal: Mapped[str | None] = mapped_column(String(20), nullable=True)
    keterangan: Mapped[str | None] = mapped_column(Text, nullable=True)
    # remaining form sections (persiapan, proses, kontrak) kept as submitted
    detail: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    history: Mapped[list["PengadaanEditHistory"]] = relationship(
        "PengadaanEditHistory",
        back_populates="pengadaan",
        cascade="all, delete-orphan",
        order_by="PengadaanEditHistory.id",
    )


class PengadaanEditHistory(Base):
    """
    Append-only audit trail of actions taken on a procurement record.
    """
    __tablename__ = "pengadaan_edit_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pengadaan_id: Mapped[str] = mapped_column(ForeignKey("pengadaan.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)  # created|updated|submitted|approved|rejected
    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    pengadaan: Mapped["Pengadaan"] = relationship("Pengadaan", back_populates="history")


class EditPermission(Base):
    """
    One entry of the edit-permission ledger. Never deleted; status only moves
    pending -> approved|rejected and approved -> expired.
    """
    __tablename__ = "edit_permissions"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    admin_id: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    # no FK: ledger entries outlive deleted procurement records
    pengadaan_id: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    permission_type: Mapped[str] = mapped_column(String(20), default=PermissionType.EDIT_FORM.value, nullable=False)
    status: Mapped[str] = mapped_column(String(10), default=PermissionStatus.PENDING.value, index=True, nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    admin_response: Mapped[str | None] = mapped_column(Text, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_edit_permissions_tuple", "user_id", "pengadaan_id", "permission_type"),
        # at most one pending request per (user, record, type)
        Index(
            "uq_edit_permissions_pending",
            "user_id",
            "pengadaan_id",
            "permission_type",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        return is_expired(self.expires_at, now or utcnow())

    def to_response(self, now: datetime | None = None) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "admin_id": self.admin_id,
            "pengadaan_id": self.pengadaan_id,
            "permission_type": self.permission_type,
            "status": self.status,
            "reason": self.reason,
            "admin_response": self.admin_response,
            "requested_at": isoformat_or_none(self.requested_at),
            "responded_at": isoformat_or_none(self.responded_at),
            "expires_at": isoformat_or_none(self.expires_at),
            "is_expired": self.is_expired(now),
            "created_at": isoformat_or_none(self.created_at),
            "updated_at": isoformat_or_none(self.updated_at),
        }


__all__ = [
    "Base",
    "User",
    "Pengadaan",
    "PengadaanEditHistory",
    "EditPermission",
    "USER_ROLES",
    "USER_STATUSES",
    "ensure_utc",
    "utcnow",
]
