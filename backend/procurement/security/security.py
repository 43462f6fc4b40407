from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from passlib.context import CryptContext
from procurement.core.config import get_settings

ALG = "HS256"

_settings = get_settings()
SECRET = _settings.jwt_secret
TOKEN_EXP_HOURS = _settings.jwt_exp_hours

pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(p: str) -> str:
    """Hash a plaintext password."""
    return pwd.hash(p)


def verify_password(p: str, h: str) -> bool:
    """Verify a plaintext password against a hash."""
    if not h:
        return False
    return pwd.verify(p, h)


def create_token(user_id: str, role: str) -> str:
    """Create a JWT for a user; ``role`` is informational, authorization re-reads the account."""
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {
            "sub": user_id,
            "role": role,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(hours=TOKEN_EXP_HOURS)).timestamp()),
        },
        SECRET,
        algorithm=ALG,
    )


def decode_token(token: str) -> str:
    """Decode a JWT and return the user id."""
    payload = jwt.decode(token, SECRET, algorithms=[ALG])
    subject = payload.get("sub")
    if not subject:
        raise JWTError("Token has no subject")
    return str(subject)
