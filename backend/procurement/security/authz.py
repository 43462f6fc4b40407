from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol

from sqlalchemy.orm import Session

from procurement.core.errors import ForbiddenError, UnauthorizedError
from procurement.core.permission_lifecycle import PermissionType
from procurement.db.models import User


ADMIN_ROLE = "admin"
USER_ROLE = "user"

GrantLookup = Callable[[str, str, PermissionType], bool]


class EditableRecord(Protocol):
    id: str
    is_editable: bool
    created_by: str
    submitted_at: datetime | None


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def resolve_identity(db: Session, user_id: str) -> Identity:
    """Resolve the identity of an authenticated account by its id."""
    user = db.get(User, user_id)
    if not user:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        raise UnauthorizedError("Account is not active")
    return Identity(user.id, user.role)


def require_admin(identity: Identity) -> None:
    if not identity.is_admin:
        raise ForbiddenError("Access denied. Admin role required.")


def can_edit(
    actor_user_id: str,
    actor_role: str,
    record: EditableRecord,
    has_grant: GrantLookup,
    permission_type: PermissionType = PermissionType.EDIT_FORM,
) -> bool:
    """
    Decide whether an actor may mutate a procurement record.

    Rules apply in order: admins always may; a record flagged non-editable is
    closed to everyone else; owners may change their own unsubmitted drafts;
    anyone else needs an active, unexpired grant of ``permission_type``.
    """
    if actor_role == ADMIN_ROLE:
        return True
    if not record.is_editable:
        return False
    if record.created_by == actor_user_id and record.submitted_at is None:
        return True
    return bool(has_grant(actor_user_id, record.id, permission_type))


def ensure_can_edit(
    identity: Identity,
    record: EditableRecord,
    has_grant: GrantLookup,
    permission_type: PermissionType = PermissionType.EDIT_FORM,
) -> None:
    if not can_edit(identity.user_id, identity.role, record, has_grant, permission_type):
        action = "delete" if permission_type is PermissionType.DELETE_FORM else "modify"
        raise ForbiddenError(f"You do not have permission to {action} this pengadaan")
