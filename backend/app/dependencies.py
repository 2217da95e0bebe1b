import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from auth import decode_access_token
from config import ACCESS_COOKIE, CSRF_COOKIE, CSRF_HEADER
from database import get_user_by_id
from db_models import User

# auto_error off so the cookie can be used when the header is missing
bearer_scheme = HTTPBearer(auto_error=False)

UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def csrf_is_valid(request: Request) -> bool:
    cookie_token = request.cookies.get(CSRF_COOKIE)
    header_token = request.headers.get(CSRF_HEADER)
    if not cookie_token or not header_token:
        return False
    return hmac.compare_digest(cookie_token, header_token)


async def _resolve_user(request: Request, creds: Optional[HTTPAuthorizationCredentials]) -> User:
    if creds and creds.credentials:
        token = creds.credentials
    else:
        token = request.cookies.get(ACCESS_COOKIE)
        if not token:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No token provided")

        # Cookie auth is sent automatically by the browser, so writes need the CSRF header too
        if request.method in UNSAFE_METHODS and not csrf_is_valid(request):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid CSRF token")

    payload = decode_access_token(token)
    user_id = payload.get("userId")
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = await run_in_threadpool(get_user_by_id, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


# Dependency to get the current logged-in user
async def get_current_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    return await _resolve_user(request, creds)


# Same as above but never fails, used by public routes that behave differently for logged-in users
async def get_optional_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[User]:
    try:
        return await _resolve_user(request, creds)
    except HTTPException:
        return None


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return user
