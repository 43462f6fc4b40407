"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(20), primary_key=True),
        sa.Column("username", sa.String(30), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(50), nullable=False),
        sa.Column("last_name", sa.String(50), nullable=False),
        sa.Column("role", sa.String(10), nullable=False, server_default="user"),
        sa.Column("status", sa.String(10), nullable=False, server_default="active"),
        sa.Column("department", sa.String(100), nullable=True),
        sa.Column("position", sa.String(100), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "pengadaan",
        sa.Column("id", sa.String(20), primary_key=True),
        sa.Column("created_by", sa.String(20), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("last_modified_by", sa.String(20), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_editable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_by", sa.String(20), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("nama", sa.String(200), nullable=False),
        sa.Column("kategori", sa.String(20), nullable=False),
        sa.Column("deskripsi", sa.Text(), nullable=False),
        sa.Column("vendor", sa.String(200), nullable=False),
        sa.Column("nilai", sa.String(40), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="Draft"),
        sa.Column("tanggal", sa.String(20), nullable=False),
        sa.Column("deadline", sa.String(20), nullable=False),
        sa.Column("nama_paket", sa.String(300), nullable=True),
        sa.Column("sinergi", sa.String(100), nullable=True),
        sa.Column("barang_jasa", sa.String(100), nullable=True),
        sa.Column("jenis_pengadaan", sa.String(100), nullable=True),
        sa.Column("metode_pengadaan", sa.String(100), nullable=True),
        sa.Column("tahun_anggaran", sa.String(10), nullable=True),
        sa.Column("nilai_hps_currency", sa.String(3), nullable=True),
        sa.Column("nilai_hps_amount", sa.String(40), nullable=True),
        sa.Column("nilai_penunjukan_currency", sa.String(3), nullable=True),
        sa.Column("nilai_penunjukan_amount", sa.String(40), nullable=True),
        sa.Column("kontrak_nomor", sa.String(100), nullable=True),
        sa.Column("kontrak_tanggal", sa.String(20), nullable=True),
        sa.Column("keterangan", sa.Text(), nullable=True),
        sa.Column("detail", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    for column in ("created_by", "kategori", "vendor", "status", "created_at"):
        op.create_index(f"ix_pengadaan_{column}", "pengadaan", [column])

    op.create_table(
        "pengadaan_edit_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "pengadaan_id",
            sa.String(20),
            sa.ForeignKey("pengadaan.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(20), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_pengadaan_edit_history_pengadaan_id", "pengadaan_edit_history", ["pengadaan_id"])

    op.create_table(
        "edit_permissions",
        sa.Column("id", sa.String(20), primary_key=True),
        sa.Column("user_id", sa.String(20), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("admin_id", sa.String(20), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("pengadaan_id", sa.String(20), nullable=False),
        sa.Column("permission_type", sa.String(20), nullable=False, server_default="edit_form"),
        sa.Column("status", sa.String(10), nullable=False, server_default="pending"),
        sa.Column("reason", sa.String(500), nullable=False),
        sa.Column("admin_response", sa.Text(), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    for column in ("user_id", "pengadaan_id", "status", "requested_at", "expires_at"):
        op.create_index(f"ix_edit_permissions_{column}", "edit_permissions", [column])
    op.create_index(
        "ix_edit_permissions_tuple",
        "edit_permissions",
        ["user_id", "pengadaan_id", "permission_type"],
    )
    op.create_index(
        "uq_edit_permissions_pending",
        "edit_permissions",
        ["user_id", "pengadaan_id", "permission_type"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_table("edit_permissions")
    op.drop_table("pengadaan_edit_history")
    op.drop_table("pengadaan")
    op.drop_table("users")
