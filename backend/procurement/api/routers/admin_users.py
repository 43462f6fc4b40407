from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from procurement.core.config import get_settings
from procurement.db.db import get_db
from procurement.schemas.auth import AdminUserCreate, UserItem, UserPage, UserRoleUpdate, UserStatusUpdate
from procurement.security.authz import Identity
from procurement.security.deps import get_current_admin
from procurement.services import users

router = APIRouter(prefix="/admin/users", tags=["admin"])
_settings = get_settings()


@router.get("", response_model=UserPage)
def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=_settings.default_page_limit, ge=1, le=_settings.max_page_limit),
    role: str | None = None,
    status: str | None = None,
    search: str | None = None,
    _: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return users.list_users(db, page=page, limit=limit, role=role, status=status, search=search)


@router.post("", response_model=UserItem, status_code=201)
def create_user(
    payload: AdminUserCreate,
    _: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    user = users.create_user(
        db,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=payload.role,
        department=payload.department,
        position=payload.position,
    )
    return users.user_item(user)


@router.patch("/{user_id}/role", response_model=UserItem)
def update_user_role(
    user_id: str,
    payload: UserRoleUpdate,
    admin: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    user = users.update_role(db, user_id=user_id, role=payload.role, actor_id=admin.user_id)
    return users.user_item(user)


@router.patch("/{user_id}/status", response_model=UserItem)
def update_user_status(
    user_id: str,
    payload: UserStatusUpdate,
    admin: Identity = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    user = users.update_status(db, user_id=user_id, status=payload.status, actor_id=admin.user_id)
    return users.user_item(user)
