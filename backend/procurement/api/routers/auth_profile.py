from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from procurement.core.config import get_settings
from procurement.core.errors import UnauthorizedError
from procurement.core.rate_limit import SlidingWindowRateLimiter
from procurement.core.time import utcnow
from procurement.db.db import get_db
from procurement.db.models import User
from procurement.schemas.auth import (
    LoginRequest,
    PasswordChange,
    ProfileUpdate,
    RegisterRequest,
    TokenResponse,
    UserItem,
)
from procurement.security.deps import get_current_user
from procurement.security.security import create_token
from procurement.services.users import (
    authenticate,
    change_password,
    create_user,
    update_profile,
    user_item,
)

router = APIRouter(tags=["auth"])
logger = logging.getLogger("procurement.api.auth")
_settings = get_settings()
_login_rate_limiter = SlidingWindowRateLimiter(
    max_requests=_settings.login_rate_limit_attempts,
    window_seconds=_settings.login_rate_limit_window_seconds,
)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    client_ip = request.client.host if request.client else "unknown"
    limiter_key = f"{client_ip}:{(payload.email or '').strip().lower()}"
    decision = _login_rate_limiter.evaluate(limiter_key)
    if not decision.allowed:
        logger.warning("Login rate limit exceeded for email=%s client_ip=%s", payload.email, client_ip)
        raise HTTPException(
            status_code=429,
            detail="Too many login attempts. Try again later.",
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )

    try:
        user = authenticate(db, identifier=payload.email, password=payload.password, now=utcnow())
    except UnauthorizedError as exc:
        logger.warning("Login failed for email=%s client_ip=%s (%s)", payload.email, client_ip, exc)
        raise
    _login_rate_limiter.forget(limiter_key)
    logger.info("Login succeeded for user_id=%s client_ip=%s", user.id, client_ip)
    return {"access_token": create_token(user.id, user.role)}


@router.post("/register", response_model=UserItem, status_code=201)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    user = create_user(
        db,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        department=payload.department,
        position=payload.position,
    )
    return user_item(user)


@router.get("/me", response_model=UserItem)
def me(user: User = Depends(get_current_user)):
    return user_item(user)


@router.put("/profile", response_model=UserItem)
def edit_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = update_profile(
        db,
        user,
        first_name=payload.first_name,
        last_name=payload.last_name,
        department=payload.department,
        position=payload.position,
    )
    return user_item(user)


@router.put("/change-password", status_code=204)
def edit_password(
    payload: PasswordChange,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    change_password(db, user, current_password=payload.current_password, new_password=payload.new_password)
    return Response(status_code=204)


@router.post("/refresh", response_model=TokenResponse)
def refresh(user: User = Depends(get_current_user)):
    """Re-issue an access token for a still-active account; role changes since login are picked up."""
    return {"access_token": create_token(user.id, user.role)}
