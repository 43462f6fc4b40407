"""
Pure state machine for edit-permission requests.

Nothing here touches the database: each ``plan_*`` function takes the current
state of a ledger entry and returns the field changes a store must apply
conditionally on that same prior status.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from procurement.core.errors import InvalidTransition, ValidationFailure, require_text
from procurement.core.time import ensure_utc


DEFAULT_GRANT_TTL = timedelta(hours=24)
MAX_TEXT_LENGTH = 500
REVOKE_PREFIX = "Revoked by admin: "


class PermissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class PermissionType(str, Enum):
    EDIT_FORM = "edit_form"
    DELETE_FORM = "delete_form"


ALLOWED_TRANSITIONS: dict[PermissionStatus, frozenset[PermissionStatus]] = {
    PermissionStatus.PENDING: frozenset({PermissionStatus.APPROVED, PermissionStatus.REJECTED}),
    PermissionStatus.APPROVED: frozenset({PermissionStatus.EXPIRED}),
    PermissionStatus.REJECTED: frozenset(),
    PermissionStatus.EXPIRED: frozenset(),
}

RESPONSE_STATUSES = frozenset({PermissionStatus.APPROVED, PermissionStatus.REJECTED})


@dataclass(frozen=True)
class Transition:
    """Field changes for one ledger entry, valid only while it is still in ``from_status``."""

    from_status: PermissionStatus
    to_status: PermissionStatus
    changes: dict[str, object] = field(default_factory=dict)
    require_unexpired: bool = False

    def values(self) -> dict[str, object]:
        return {"status": self.to_status.value, **self.changes}


def coerce_status(value: PermissionStatus | str) -> PermissionStatus:
    try:
        return PermissionStatus(value)
    except ValueError:
        raise ValidationFailure(f"Invalid status value: {value}", field="status") from None


def coerce_type(value: PermissionType | str | None) -> PermissionType:
    if value is None or value == "":
        return PermissionType.EDIT_FORM
    try:
        return PermissionType(value)
    except ValueError:
        raise ValidationFailure("Invalid permission type", field="permission_type") from None


def _check_transition(current: PermissionStatus | str, target: PermissionStatus) -> PermissionStatus:
    status = coerce_status(current)
    if target in ALLOWED_TRANSITIONS[status]:
        return status
    if target in RESPONSE_STATUSES:
        raise InvalidTransition("Permission request has already been processed")
    raise InvalidTransition(f"Cannot move permission from {status.value} to {target.value}")


def is_expired(expires_at: datetime | None, now: datetime) -> bool:
    """True iff an expiry is set and lies in the past."""
    expiry = ensure_utc(expires_at)
    return expiry is not None and ensure_utc(now) > expiry


def is_active(status: PermissionStatus | str, expires_at: datetime | None, now: datetime) -> bool:
    expiry = ensure_utc(expires_at)
    return (
        coerce_status(status) is PermissionStatus.APPROVED
        and expiry is not None
        and expiry > ensure_utc(now)
    )


def plan_approval(
    current: PermissionStatus | str,
    *,
    admin_id: str,
    response: str | None,
    now: datetime,
    ttl: timedelta = DEFAULT_GRANT_TTL,
) -> Transition:
    status = _check_transition(current, PermissionStatus.APPROVED)
    changes: dict[str, object] = {
        "admin_id": admin_id,
        "responded_at": now,
        "expires_at": now + ttl,
    }
    note = (response or "").strip()
    if note:
        if len(note) > MAX_TEXT_LENGTH:
            raise ValidationFailure(
                f"Admin response cannot exceed {MAX_TEXT_LENGTH} characters", field="response"
            )
        changes["admin_response"] = note
    return Transition(status, PermissionStatus.APPROVED, changes)


def plan_rejection(
    current: PermissionStatus | str,
    *,
    admin_id: str,
    response: str | None,
    now: datetime,
) -> Transition:
    note = require_text(
        response,
        "response",
        "Response is required when rejecting a request",
        max_length=MAX_TEXT_LENGTH,
    )
    status = _check_transition(current, PermissionStatus.REJECTED)
    return Transition(
        status,
        PermissionStatus.REJECTED,
        {"admin_id": admin_id, "admin_response": note, "responded_at": now},
    )


def plan_revocation(
    current: PermissionStatus | str,
    *,
    expires_at: datetime | None,
    admin_response: str | None,
    reason: str | None,
    now: datetime,
) -> Transition:
    note = require_text(reason, "reason", "Reason is required", max_length=MAX_TEXT_LENGTH)
    if not is_active(current, expires_at, now):
        raise InvalidTransition("Permission is not active")
    revocation = f"{REVOKE_PREFIX}{note}"
    previous = (admin_response or "").strip()
    return Transition(
        PermissionStatus.APPROVED,
        PermissionStatus.EXPIRED,
        {
            "admin_response": f"{previous}\n{revocation}" if previous else revocation,
            "expires_at": now,
        },
        require_unexpired=True,
    )
