from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session


USER_PREFIX = ("USR", 4)
PENGADAAN_PREFIX = ("PGD", 3)
PERMISSION_PREFIX = ("PERM", 4)


def format_public_id(prefix: str, number: int, width: int) -> str:
    return f"{prefix}-{number:0{width}d}"


def next_public_id(db: Session, model, prefix: str, width: int) -> str:
    """
    Allocate the next ``PREFIX-NNN`` id after the highest one in use.

    Ids are ordered by length first so ``PGD-1000`` sorts after ``PGD-999``.
    Two concurrent allocations can pick the same id; the primary key rejects
    the second insert and the caller retries.
    """
    column = model.id
    latest = db.scalar(
        select(column)
        .where(column.like(f"{prefix}-%"))
        .order_by(func.length(column).desc(), column.desc())
        .limit(1)
    )
    number = 0
    if latest:
        suffix = latest.rsplit("-", 1)[-1]
        number = int(suffix) if suffix.isdigit() else 0
    return format_public_id(prefix, number + 1, width)
