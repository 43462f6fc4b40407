from __future__ import annotations

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from procurement.db.db import get_db
from procurement.db.models import User
from procurement.security.authz import Identity, require_admin, resolve_identity
from procurement.security.security import decode_token


auth_scheme = HTTPBearer()


def get_bearer_token(
    creds: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> str:
    return creds.credentials


def get_current_user_id(
    token: str = Depends(get_bearer_token),
) -> str:
    return decode_token(token)


def get_current_identity(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Identity:
    return resolve_identity(db, user_id)


def get_current_user(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> User:
    return db.get(User, identity.user_id)


def get_current_admin(
    identity: Identity = Depends(get_current_identity),
) -> Identity:
    require_admin(identity)
    return identity
