from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from procurement.db.identifiers import USER_PREFIX, next_public_id
from procurement.db.models import User
from procurement.security.security import hash_password


# (username, email, password, role, first_name, last_name, department)
DEFAULT_USERS = [
    ("admin", "admin@example.com", "admin123", "admin", "System", "Administrator", "IT"),
    ("alice", "alice@example.com", "password", "user", "Alice", "Santoso", "Procurement"),
    ("bob", "bob@example.com", "password", "user", "Bob", "Wijaya", "Finance"),
]


def _get_or_create_user(db: Session, username: str, email: str) -> User:
    """
    Get or create a User by email.
    """
    user = db.scalar(select(User).where(User.email == email))
    if user:
        return user
    user = User(
        id=next_public_id(db, User, *USER_PREFIX),
        username=username,
        email=email,
        password_hash="",
        first_name="",
        last_name="",
    )
    db.add(user)
    db.flush()
    return user


def seed(db: Session) -> None:
    """
    Idempotent seeding:
    - ensures the default accounts exist
    - keeps their roles and names as declared here
    - sets a password only where none is stored yet
    """
    for username, email, password, role, first_name, last_name, department in DEFAULT_USERS:
        user = _get_or_create_user(db, username=username, email=email)

        # If already seeded but missing password_hash, set it.
        if not user.password_hash:
            user.password_hash = hash_password(password)

        user.role = role
        user.first_name = first_name
        user.last_name = last_name
        user.department = department

    db.commit()
