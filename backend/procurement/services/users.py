from __future__ import annotations

from datetime import datetime
import logging
import math

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procurement.core.errors import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailure,
)
from procurement.core.time import isoformat_or_none
from procurement.db.identifiers import USER_PREFIX, next_public_id
from procurement.db.models import USER_ROLES, USER_STATUSES, User
from procurement.security.security import hash_password, verify_password

logger = logging.getLogger("procurement.services.users")

MIN_PASSWORD_LENGTH = 6


def user_item(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
        "status": user.status,
        "department": user.department,
        "position": user.position,
        "last_login_at": isoformat_or_none(user.last_login_at),
        "created_at": isoformat_or_none(user.created_at),
    }


def find_by_login(db: Session, identifier: str) -> User | None:
    """Look an account up by email or username, case-insensitively."""
    key = (identifier or "").strip().lower()
    if not key:
        return None
    return db.scalar(
        select(User).where(or_(func.lower(User.email) == key, func.lower(User.username) == key))
    )


def authenticate(db: Session, *, identifier: str, password: str, now: datetime) -> User:
    user = find_by_login(db, identifier)
    if not user or not verify_password(password, user.password_hash):
        raise UnauthorizedError("Invalid credentials")
    if not user.is_active:
        raise UnauthorizedError("Account is not active")
    user.last_login_at = now
    db.commit()
    db.refresh(user)
    return user


def create_user(
    db: Session,
    *,
    username: str,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str = "user",
    department: str | None = None,
    position: str | None = None,
) -> User:
    if role not in USER_ROLES:
        raise ValidationFailure(f"Role must be one of: {', '.join(USER_ROLES)}", field="role")
    email = email.strip().lower()
    username = username.strip()
    if find_by_login(db, email) or find_by_login(db, username):
        raise ConflictError("User with this email or username already exists")

    user = User(
        id=next_public_id(db, User, *USER_PREFIX),
        username=username,
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        role=role,
        status="active",
        department=department,
        position=position,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User with this email or username already exists") from None
    db.refresh(user)
    logger.info("User created id=%s role=%s", user.id, user.role)
    return user


def update_profile(
    db: Session,
    user: User,
    *,
    first_name: str | None = None,
    last_name: str | None = None,
    department: str | None = None,
    position: str | None = None,
) -> User:
    """Apply the non-blank fields of a self-service profile edit; role, status and email are not editable here."""
    changes = {
        "first_name": (first_name or "").strip(),
        "last_name": (last_name or "").strip(),
        "department": (department or "").strip(),
        "position": (position or "").strip(),
    }
    for name, value in changes.items():
        if value:
            setattr(user, name, value)
    db.commit()
    db.refresh(user)
    logger.info("Profile updated for user_id=%s", user.id)
    return user


def change_password(db: Session, user: User, *, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationFailure("Current password is incorrect", field="current_password")
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationFailure(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="new_password"
        )
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info("Password changed for user_id=%s", user.id)


def list_users(
    db: Session,
    *,
    page: int,
    limit: int,
    role: str | None = None,
    status: str | None = None,
    search: str | None = None,
) -> dict:
    conditions = []
    if role:
        conditions.append(User.role == role)
    if status:
        conditions.append(User.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                User.username.ilike(pattern),
                User.email.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
            )
        )

    total = int(db.scalar(select(func.count()).select_from(User).where(*conditions)) or 0)
    rows = db.scalars(
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return {
        "items": [user_item(u) for u in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def _get_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def update_role(db: Session, *, user_id: str, role: str, actor_id: str) -> User:
    if role not in USER_ROLES:
        raise ValidationFailure(f"Role must be one of: {', '.join(USER_ROLES)}", field="role")
    user = _get_user(db, user_id)
    if user.id == actor_id and role != user.role:
        raise ValidationFailure("You cannot change your own role", field="role")
    user.role = role
    db.commit()
    db.refresh(user)
    logger.info("User %s role set to %s by %s", user.id, role, actor_id)
    return user


def update_status(db: Session, *, user_id: str, status: str, actor_id: str) -> User:
    if status not in USER_STATUSES:
        raise ValidationFailure(f"Status must be one of: {', '.join(USER_STATUSES)}", field="status")
    user = _get_user(db, user_id)
    if user.id == actor_id and status != "active":
        raise ValidationFailure("You cannot deactivate your own account", field="status")
    user.status = status
    db.commit()
    db.refresh(user)
    logger.info("User %s status set to %s by %s", user.id, status, actor_id)
    return user
