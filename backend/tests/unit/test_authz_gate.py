"""Tests for the edit authorization gate."""
from datetime import datetime, timezone
from itertools import product
from types import SimpleNamespace

import pytest

from procurement.core.errors import ForbiddenError
from procurement.core.permission_lifecycle import PermissionType
from procurement.security.authz import Identity, can_edit, ensure_can_edit

ACTOR = "USR-0002"
OWNER = "USR-0003"
SUBMITTED_AT = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _record(*, editable: bool, owner: bool, submitted: bool):
    return SimpleNamespace(
        id="PGD-001",
        is_editable=editable,
        created_by=ACTOR if owner else OWNER,
        submitted_at=SUBMITTED_AT if submitted else None,
    )


def _lookup(result: bool, calls: list | None = None):
    def _has_grant(user_id, pengadaan_id, permission_type):
        if calls is not None:
            calls.append((user_id, pengadaan_id, permission_type))
        return result

    return _has_grant


CASES = list(product([True, False], repeat=5))


class TestCanEdit:
    """Tests for every combination of the gate's inputs."""

    @pytest.mark.parametrize("admin,editable,owner,grant,submitted", CASES)
    def test_rule_order(self, admin, editable, owner, grant, submitted):
        record = _record(editable=editable, owner=owner, submitted=submitted)
        role = "admin" if admin else "user"

        if admin:
            expected = True
        elif not editable:
            expected = False
        elif owner and not submitted:
            expected = True
        else:
            expected = grant

        assert can_edit(ACTOR, role, record, _lookup(grant)) is expected

    def test_covers_all_combinations(self):
        assert len(CASES) == 32

    def test_admin_skips_ledger_lookup(self):
        calls: list = []
        record = _record(editable=False, owner=False, submitted=True)
        assert can_edit(ACTOR, "admin", record, _lookup(False, calls))
        assert calls == []

    def test_owner_draft_skips_ledger_lookup(self):
        calls: list = []
        record = _record(editable=True, owner=True, submitted=False)
        assert can_edit(ACTOR, "user", record, _lookup(False, calls))
        assert calls == []

    def test_lookup_is_scoped_to_actor_record_and_type(self):
        calls: list = []
        record = _record(editable=True, owner=False, submitted=True)
        can_edit(ACTOR, "user", record, _lookup(True, calls), PermissionType.DELETE_FORM)
        assert calls == [(ACTOR, "PGD-001", PermissionType.DELETE_FORM)]


class TestEnsureCanEdit:
    """Tests for the raising form of the gate."""

    def test_denied_update(self):
        record = _record(editable=True, owner=False, submitted=True)
        with pytest.raises(ForbiddenError) as exc:
            ensure_can_edit(Identity(ACTOR, "user"), record, _lookup(False))
        assert str(exc.value) == "You do not have permission to modify this pengadaan"

    def test_denied_delete(self):
        record = _record(editable=True, owner=False, submitted=True)
        with pytest.raises(ForbiddenError) as exc:
            ensure_can_edit(Identity(ACTOR, "user"), record, _lookup(False), PermissionType.DELETE_FORM)
        assert "delete" in str(exc.value)

    def test_allowed_returns_none(self):
        record = _record(editable=True, owner=False, submitted=True)
        assert ensure_can_edit(Identity(ACTOR, "user"), record, _lookup(True)) is None
