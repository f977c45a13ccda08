from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from bytestore.config import settings


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as carried by a verified token."""
    id: str
    role: str
    name: Optional[str] = None
    email: Optional[str] = None


def is_admin(principal: Principal) -> bool:
    return principal.role == settings.ADMIN_ROLE


def is_admin_or_owner(principal: Principal, owner_id: Any) -> bool:
    return is_admin(principal) or (owner_id is not None and str(owner_id) == str(principal.id))


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Principal]:
    """
    Verify `token` and return the Principal it carries, or None when the
    signature, expiry or claims are not acceptable.
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("id") or payload.get("sub")
    role = payload.get("role")
    if not user_id or not role:
        return None
    return Principal(
        id=str(user_id),
        role=str(role),
        name=payload.get("nombre"),
        email=payload.get("correo"),
    )
