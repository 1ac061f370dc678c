"""
Bearer token verification.

Tokens are minted by the identity service (HS256, shared SECRET_KEY). The
`sub` claim is the user id; door staff carry `role` = "staff" or "admin".
create_access_token exists for tooling and tests.
"""

from datetime import timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
import structlog

from ticketgate.core.clock import utcnow
from ticketgate.core.config import get_settings

settings = get_settings()

STAFF_ROLES = frozenset({"staff", "admin"})

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    to_encode["exp"] = utcnow() + (expires_delta or timedelta(minutes=30))
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not claims.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims


async def get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_access_token(credentials.credentials)


async def get_current_user_id(claims: dict = Depends(get_token_claims)) -> int:
    try:
        return int(claims["sub"])
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token subject is not a user id",
        )


async def require_staff(claims: dict = Depends(get_token_claims)) -> str:
    """Staff identity; bound into the log context for the rest of the request."""
    if claims.get("role") not in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Door staff only",
        )
    staff_id = str(claims["sub"])
    structlog.contextvars.bind_contextvars(staff_id=staff_id)
    return staff_id
