# bytestore/api/deps.py
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from bytestore.config import settings
from bytestore.core.security import Principal, decode_access_token, is_admin

# tokens are minted by the users service; tokenUrl only feeds the OpenAPI docs
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=settings.TOKEN_URL, auto_error=False)


def get_current_principal(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Principal:
    """
    Resolve the caller from the `Authorization: Bearer <jwt>` header.
    Raises 401 MISSING_TOKEN when no header is sent and 401 INVALID_TOKEN
    when the token does not verify.
    """
    if not request.headers.get("Authorization"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Authorization token required", "error": "MISSING_TOKEN"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    principal = decode_access_token(token) if token else None
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid or expired token", "error": "INVALID_TOKEN"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """
    Dependency to require admin privileges. Raises 403 if the caller is not admin.
    """
    if not is_admin(principal):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Administrator privileges required", "error": "INSUFFICIENT_PERMISSIONS"},
        )
    return principal
