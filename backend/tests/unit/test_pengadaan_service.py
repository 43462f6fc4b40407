"""Tests for the procurement record service."""
import csv
import io
from datetime import timedelta

import pytest

from procurement.core.errors import (
    ForbiddenError,
    InvalidTransition,
    NotFoundError,
    ValidationFailure,
)
from procurement.core.time import ensure_utc
from procurement.db.models import EditPermission, Pengadaan
from procurement.security.authz import Identity
from procurement.services import edit_permissions as workflow
from procurement.services import pengadaan as records


def _identity(user) -> Identity:
    return Identity(user.id, user.role)


def _payload(**overrides):
    payload = {
        "nama": "Jasa Kebersihan Gedung",
        "kategori": "Jasa",
        "deskripsi": "Kontrak kebersihan satu tahun",
        "vendor": "CV Bersih Jaya",
        "nilai": "75.000.000",
        "tanggal": "2026-02-01",
        "deadline": "2026-12-31",
    }
    payload.update(overrides)
    return payload


class TestNormalization:
    """Tests for numeric and currency normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Rp 150.000.000", "150.000.000"),
            ("1,250,000", "1250000"),
            ("$ 12.5", "12.5"),
            ("-300", "-300"),
            (42, "42"),
            ("abc", None),
            ("-", None),
            ("   ", None),
            (None, None),
        ],
    )
    def test_normalize_numeric_string(self, raw, expected):
        assert records.normalize_numeric_string(raw) == expected

    def test_payload_keeps_explicit_empty_string(self):
        normalized = records.normalize_payload({"nilai_hps_amount": "", "nilai_penunjukan_amount": "n/a"})
        assert normalized == {"nilai_hps_amount": ""}

    def test_currency_codes_are_upper_cased(self):
        normalized = records.normalize_payload({"nilai_hps_currency": " usd "})
        assert normalized["nilai_hps_currency"] == "USD"


class TestCreateAndRead:
    """Tests for creating and reading records."""

    def test_create_sets_ownership_and_history(self, pengadaan, owner_user):
        assert pengadaan.id == "PGD-001"
        assert pengadaan.created_by == owner_user.id
        assert pengadaan.is_editable is True
        assert pengadaan.submitted_at is None
        assert pengadaan.status == "Draft"
        assert pengadaan.nilai == "150.000.000"
        assert pengadaan.nilai_hps_amount == "150000000"
        assert pengadaan.nilai_hps_currency == "IDR"
        assert [entry.action for entry in pengadaan.history] == ["created"]

    def test_ids_increment(self, db_session, pengadaan, owner_user, now):
        second = records.create_pengadaan(db_session, data=_payload(), actor=_identity(owner_user), now=now)
        assert second.id == "PGD-002"

    def test_invalid_kategori(self, db_session, owner_user, now):
        with pytest.raises(ValidationFailure) as exc:
            records.create_pengadaan(
                db_session, data=_payload(kategori="Lainnya"), actor=_identity(owner_user), now=now
            )
        assert exc.value.field == "kategori"

    def test_invalid_currency(self, db_session, owner_user, now):
        with pytest.raises(ValidationFailure):
            records.create_pengadaan(
                db_session, data=_payload(nilai_hps_currency="JPY"), actor=_identity(owner_user), now=now
            )

    def test_non_numeric_nilai(self, db_session, owner_user, now):
        with pytest.raises(ValidationFailure) as exc:
            records.create_pengadaan(db_session, data=_payload(nilai="tbd"), actor=_identity(owner_user), now=now)
        assert exc.value.field == "nilai"

    def test_get_includes_history(self, db_session, pengadaan):
        item = records.get_pengadaan(db_session, pengadaan.id)
        assert item["id"] == pengadaan.id
        assert item["history"][0]["action"] == "created"

    def test_get_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            records.get_pengadaan(db_session, "PGD-404")


class TestListing:
    """Tests for filtered, sorted, paginated listing."""

    @pytest.fixture
    def three_records(self, db_session, pengadaan, owner_user, now):
        actor = _identity(owner_user)
        records.create_pengadaan(db_session, data=_payload(), actor=actor, now=now + timedelta(minutes=1))
        records.create_pengadaan(
            db_session,
            data=_payload(
                nama="Konsultan Pajak",
                kategori="Konsultansi",
                deskripsi="Pendampingan pelaporan pajak",
                vendor="PT Pajak Prima",
            ),
            actor=actor,
            now=now + timedelta(minutes=2),
        )

    def test_pagination(self, db_session, three_records):
        page = records.list_pengadaan(db_session, page=1, limit=2)

        assert page["total"] == 3
        assert page["total_pages"] == 2
        assert page["has_next"] is True
        assert page["has_prev"] is False
        assert [item["id"] for item in page["items"]] == ["PGD-003", "PGD-002"]

    def test_filters(self, db_session, three_records):
        assert records.list_pengadaan(db_session, kategori="Jasa")["total"] == 1
        assert records.list_pengadaan(db_session, vendor="pajak")["total"] == 1
        assert records.list_pengadaan(db_session, search="laptop")["total"] == 1
        assert records.list_pengadaan(db_session, status="Draft")["total"] == 3

    def test_sort_ascending(self, db_session, three_records):
        page = records.list_pengadaan(db_session, sort_by="nama", sort_order="asc")
        assert page["items"][0]["nama"] == "Jasa Kebersihan Gedung"

    def test_rejects_unknown_sort_field(self, db_session):
        with pytest.raises(ValidationFailure):
            records.list_pengadaan(db_session, sort_by="password_hash")

    def test_rejects_bad_date(self, db_session):
        with pytest.raises(ValidationFailure):
            records.list_pengadaan(db_session, date_from="yesterday")

    def test_search(self, db_session, three_records):
        results = records.search_pengadaan(db_session, term="kebersihan")
        assert [item["nama"] for item in results] == ["Jasa Kebersihan Gedung"]

    def test_search_requires_term(self, db_session):
        with pytest.raises(ValidationFailure):
            records.search_pengadaan(db_session, term="  ")


class TestUpdateAndDelete:
    """Tests for gated mutations."""

    def test_owner_updates_draft(self, db_session, pengadaan, owner_user, now):
        updated = records.update_pengadaan(
            db_session,
            pengadaan_id=pengadaan.id,
            data={"vendor": "PT Baru", "reason": "vendor changed"},
            actor=_identity(owner_user),
            has_grant=workflow.grant_lookup(db_session, now),
            now=now,
        )

        assert updated.vendor == "PT Baru"
        assert updated.last_modified_by == owner_user.id
        last = updated.history[-1]
        assert last.action == "updated"
        assert last.changes == {"fields": ["vendor"]}
        assert last.reason == "vendor changed"

    def test_other_user_without_grant_is_denied(self, db_session, pengadaan, other_user, now):
        with pytest.raises(ForbiddenError):
            records.update_pengadaan(
                db_session,
                pengadaan_id=pengadaan.id,
                data={"vendor": "PT Lain"},
                actor=_identity(other_user),
                has_grant=workflow.grant_lookup(db_session, now),
                now=now,
            )
        db_session.refresh(pengadaan)
        assert pengadaan.vendor == "PT Sumber Makmur"

    def test_submitted_record_needs_grant(self, db_session, pengadaan, owner_user, now):
        owner = _identity(owner_user)
        records.submit_pengadaan(db_session, pengadaan_id=pengadaan.id, actor=owner, now=now)

        with pytest.raises(ForbiddenError):
            records.update_pengadaan(
                db_session,
                pengadaan_id=pengadaan.id,
                data={"vendor": "PT Lain"},
                actor=owner,
                has_grant=workflow.grant_lookup(db_session, now),
                now=now,
            )

    def test_grant_opens_editable_submitted_record(self, db_session, pengadaan, other_user, admin_user, now):
        # submitted but still flagged editable: only a grant lets a non-owner in
        pengadaan.submitted_at = now
        db_session.commit()
        permission = workflow.request_permission(
            db_session,
            user_id=other_user.id,
            pengadaan_id=pengadaan.id,
            permission_type="edit_form",
            reason="fix typo",
            now=now,
        )
        workflow.respond_to_request(
            db_session, permission_id=permission.id, admin_id=admin_user.id, status="approved", now=now
        )

        later = now + timedelta(hours=1)
        updated = records.update_pengadaan(
            db_session,
            pengadaan_id=pengadaan.id,
            data={"keterangan": "typo fixed"},
            actor=_identity(other_user),
            has_grant=workflow.grant_lookup(db_session, later),
            now=later,
        )
        assert updated.keterangan == "typo fixed"

        expired = now + timedelta(hours=25)
        with pytest.raises(ForbiddenError):
            records.update_pengadaan(
                db_session,
                pengadaan_id=pengadaan.id,
                data={"keterangan": "again"},
                actor=_identity(other_user),
                has_grant=workflow.grant_lookup(db_session, expired),
                now=expired,
            )

    def test_non_admin_cannot_change_status(self, db_session, pengadaan, owner_user, now):
        with pytest.raises(ForbiddenError):
            records.update_pengadaan(
                db_session,
                pengadaan_id=pengadaan.id,
                data={"status": "Completed"},
                actor=_identity(owner_user),
                has_grant=workflow.grant_lookup(db_session, now),
                now=now,
            )

    def test_admin_changes_status(self, db_session, pengadaan, admin_user, now):
        updated = records.update_pengadaan(
            db_session,
            pengadaan_id=pengadaan.id,
            data={"status": "In Progress"},
            actor=_identity(admin_user),
            has_grant=workflow.grant_lookup(db_session, now),
            now=now,
        )
        assert updated.status == "In Progress"

    def test_delete_needs_delete_grant(self, db_session, pengadaan, other_user, admin_user, now):
        pengadaan.submitted_at = now
        db_session.commit()
        edit = workflow.request_permission(
            db_session, user_id=other_user.id, pengadaan_id=pengadaan.id,
            permission_type="edit_form", reason="edit", now=now,
        )
        workflow.respond_to_request(
            db_session, permission_id=edit.id, admin_id=admin_user.id, status="approved", now=now
        )

        with pytest.raises(ForbiddenError):
            records.delete_pengadaan(
                db_session,
                pengadaan_id=pengadaan.id,
                actor=_identity(other_user),
                has_grant=workflow.grant_lookup(db_session, now),
            )

        removal = workflow.request_permission(
            db_session, user_id=other_user.id, pengadaan_id=pengadaan.id,
            permission_type="delete_form", reason="duplicate entry", now=now,
        )
        workflow.respond_to_request(
            db_session, permission_id=removal.id, admin_id=admin_user.id, status="approved", now=now
        )
        records.delete_pengadaan(
            db_session,
            pengadaan_id=pengadaan.id,
            actor=_identity(other_user),
            has_grant=workflow.grant_lookup(db_session, now),
        )

        assert db_session.get(Pengadaan, "PGD-001") is None
        # the ledger outlives the record
        assert db_session.get(EditPermission, removal.id) is not None


class TestSubmitAndReview:
    """Tests for the submission and admin review flow."""

    def test_submit_locks_record(self, db_session, pengadaan, owner_user, now):
        submitted = records.submit_pengadaan(
            db_session, pengadaan_id=pengadaan.id, actor=_identity(owner_user), now=now
        )

        assert submitted.status == "Submitted"
        assert submitted.is_editable is False
        assert submitted.submitted_by == owner_user.id
        assert submitted.history[-1].action == "submitted"

    def test_submit_twice(self, db_session, pengadaan, owner_user, now):
        owner = _identity(owner_user)
        records.submit_pengadaan(db_session, pengadaan_id=pengadaan.id, actor=owner, now=now)
        with pytest.raises(InvalidTransition):
            records.submit_pengadaan(db_session, pengadaan_id=pengadaan.id, actor=owner, now=now)

    def test_only_creator_submits(self, db_session, pengadaan, other_user, now):
        with pytest.raises(ForbiddenError):
            records.submit_pengadaan(db_session, pengadaan_id=pengadaan.id, actor=_identity(other_user), now=now)

    def test_review_approve(self, db_session, pengadaan, owner_user, admin_user, now):
        records.submit_pengadaan(db_session, pengadaan_id=pengadaan.id, actor=_identity(owner_user), now=now)

        reviewed = records.review_pengadaan(
            db_session,
            pengadaan_id=pengadaan.id,
            admin=_identity(admin_user),
            decision="approve",
            reason=None,
            now=now,
        )

        assert reviewed.status == "Approved"
        assert reviewed.history[-1].action == "approved"

    def test_review_reject_keeps_submission(self, db_session, pengadaan, owner_user, admin_user, now):
        records.submit_pengadaan(db_session, pengadaan_id=pengadaan.id, actor=_identity(owner_user), now=now)

        reviewed = records.review_pengadaan(
            db_session,
            pengadaan_id=pengadaan.id,
            admin=_identity(admin_user),
            decision="reject",
            reason="Lengkapi dokumen HPS",
            now=now,
        )

        assert reviewed.status == "Rejected"
        assert reviewed.is_editable is True
        assert ensure_utc(reviewed.submitted_at) == now
        assert reviewed.submitted_by == owner_user.id
        assert reviewed.history[-1].reason == "Lengkapi dokumen HPS"

    def test_rejected_form_needs_grant_for_owner(self, db_session, pengadaan, owner_user, admin_user, now):
        owner = _identity(owner_user)
        records.submit_pengadaan(db_session, pengadaan_id=pengadaan.id, actor=owner, now=now)
        records.review_pengadaan(
            db_session,
            pengadaan_id=pengadaan.id,
            admin=_identity(admin_user),
            decision="reject",
            reason="Lengkapi dokumen HPS",
            now=now,
        )

        with pytest.raises(ForbiddenError):
            records.update_pengadaan(
                db_session,
                pengadaan_id=pengadaan.id,
                data={"keterangan": "HPS added"},
                actor=owner,
                has_grant=workflow.grant_lookup(db_session, now),
                now=now,
            )

        permission = workflow.request_permission(
            db_session,
            user_id=owner_user.id,
            pengadaan_id=pengadaan.id,
            permission_type=None,
            reason="add HPS breakdown",
            now=now,
        )
        workflow.respond_to_request(
            db_session, permission_id=permission.id, admin_id=admin_user.id, status="approved", now=now
        )
        updated = records.update_pengadaan(
            db_session,
            pengadaan_id=pengadaan.id,
            data={"keterangan": "HPS added"},
            actor=owner,
            has_grant=workflow.grant_lookup(db_session, now),
            now=now,
        )

        assert updated.keterangan == "HPS added"

    def test_rejected_form_cannot_be_resubmitted(self, db_session, pengadaan, owner_user, admin_user, now):
        owner = _identity(owner_user)
        records.submit_pengadaan(db_session, pengadaan_id=pengadaan.id, actor=owner, now=now)
        records.review_pengadaan(
            db_session,
            pengadaan_id=pengadaan.id,
            admin=_identity(admin_user),
            decision="reject",
            reason="Lengkapi dokumen HPS",
            now=now,
        )

        with pytest.raises(InvalidTransition):
            records.submit_pengadaan(db_session, pengadaan_id=pengadaan.id, actor=owner, now=now)

    def test_review_reject_requires_reason(self, db_session, pengadaan, owner_user, admin_user, now):
        records.submit_pengadaan(db_session, pengadaan_id=pengadaan.id, actor=_identity(owner_user), now=now)
        with pytest.raises(ValidationFailure):
            records.review_pengadaan(
                db_session,
                pengadaan_id=pengadaan.id,
                admin=_identity(admin_user),
                decision="reject",
                reason="",
                now=now,
            )

    def test_review_requires_submission(self, db_session, pengadaan, admin_user, now):
        with pytest.raises(InvalidTransition):
            records.review_pengadaan(
                db_session,
                pengadaan_id=pengadaan.id,
                admin=_identity(admin_user),
                decision="approve",
                reason=None,
                now=now,
            )

    def test_review_requires_admin(self, db_session, pengadaan, owner_user, now):
        with pytest.raises(ForbiddenError):
            records.review_pengadaan(
                db_session,
                pengadaan_id=pengadaan.id,
                admin=_identity(owner_user),
                decision="approve",
                reason=None,
                now=now,
            )


class TestStatsAndExport:
    """Tests for statistics and export."""

    def test_stats(self, db_session, pengadaan, owner_user, now):
        records.create_pengadaan(
            db_session,
            data=_payload(nilai_hps_currency="USD", nilai_hps_amount="2,500.50"),
            actor=_identity(owner_user),
            now=now,
        )

        stats = records.pengadaan_stats(db_session, now)

        assert stats["total"] == 2
        assert stats["by_status"] == {"Draft": 2}
        assert stats["by_kategori"] == {"Barang": 1, "Jasa": 1}
        assert stats["total_nilai"] == {"idr": 150000000.0, "usd": 2500.5}
        assert stats["recent_activity"]["created"] == 2
        assert stats["recent_activity"]["completed"] == 0

    def test_export_json(self, db_session, pengadaan):
        exported = records.export_pengadaan(db_session, "json")
        assert [item["id"] for item in exported] == [pengadaan.id]

    def test_export_csv(self, db_session, pengadaan):
        exported = records.export_pengadaan(db_session, "csv")

        rows = list(csv.DictReader(io.StringIO(exported)))
        assert rows[0]["id"] == pengadaan.id
        assert rows[0]["nilai_hps_currency"] == "IDR"

    def test_export_unknown_format(self, db_session):
        with pytest.raises(ValidationFailure):
            records.export_pengadaan(db_session, "xml")
