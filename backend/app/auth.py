# Password Managements and Session Managements

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

import bcrypt
import httpx

# For Google OAuth
from authlib.integrations.starlette_client import OAuth, OAuthError

# For creating/decoding JWTs (JSON Web Tokens)
from jose import jwt, JWTError, ExpiredSignatureError

from fastapi import HTTPException, status
from starlette.responses import Response

from db_models import User
from config import (
    ALGORITHM,
    JWT_SECRET,
    JWT_REFRESH_SECRET,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    REFRESH_TOKEN_EXPIRE_DAYS,
    COOKIE_SECURE,
    COOKIE_SAMESITE,
    COOKIE_DOMAIN,
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    CSRF_COOKIE,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
)

logger = logging.getLogger(__name__)

#--------------------------------------------------------------------------------------------------------------------------------------------

# 1. Managing Passwords (bcrypt)

# Returns the hashed password
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


# Verifies the password
def verify_password(input_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(input_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed hash (e.g. placeholder password of an OAuth account)
        return False

#--------------------------------------------------------------------------------------------------------------------------------------------

# 2. Email checks done at signup

DISPOSABLE_DOMAINS = {
    "mailinator.com", "10minutemail.com", "guerrillamail.com", "tempmail.org",
    "yopmail.com", "throwaway.email", "temp-mail.org", "maildrop.cc",
    "sharklasers.com", "guerrillamail.info", "guerrillamail.biz",
    "getnada.com", "mohmal.com", "emailondeck.com", "fakeinbox.com",
    "tempail.com", "tempr.email", "discard.email", "spamgourmet.com",
}


def is_disposable_email(email: str) -> bool:
    domain = email.rsplit("@", 1)[-1].lower()
    return domain in DISPOSABLE_DOMAINS

#--------------------------------------------------------------------------------------------------------------------------------------------

# 3. JWT Token Configuration

def token_payload(user: User) -> Dict[str, Any]:
    return {"userId": user.id, "email": user.email, "role": user.role}


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET, algorithm=ALGORITHM)


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))
    to_encode.update({"exp": expire, "type": "refresh"})
    return jwt.encode(to_encode, JWT_REFRESH_SECRET, algorithm=ALGORITHM)


def create_tokens(user: User) -> Dict[str, str]:
    payload = token_payload(user)
    return {
        "accessToken": create_access_token(payload),
        "refreshToken": create_refresh_token(payload),
    }


def decode_access_token(token: str) -> Dict[str, Any]:
    """Returns the payload or raises 401 with the reason."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def decode_refresh_token(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, JWT_REFRESH_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")

    if payload.get("type") != "refresh":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    return payload

#--------------------------------------------------------------------------------------------------------------------------------------------

# 4. Cookies

def _cookie_kwargs() -> Dict[str, Any]:
    return {
        "secure": COOKIE_SECURE,
        "samesite": COOKIE_SAMESITE,
        "domain": COOKIE_DOMAIN,
        "path": "/",
    }


def set_auth_cookies(response: Response, tokens: Dict[str, str]):
    response.set_cookie(
        ACCESS_COOKIE,
        tokens["accessToken"],
        httponly=True,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        **_cookie_kwargs(),
    )
    if tokens.get("refreshToken"):
        response.set_cookie(
            REFRESH_COOKIE,
            tokens["refreshToken"],
            httponly=True,
            max_age=REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
            **_cookie_kwargs(),
        )


def clear_auth_cookies(response: Response):
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, **_cookie_kwargs())


# CSRF (double submit). The cookie is readable by the frontend so it can echo it back in a header
def generate_csrf_token() -> str:
    return secrets.token_hex(32)


def set_csrf_cookie(response: Response, token: str):
    response.set_cookie(CSRF_COOKIE, token, httponly=False, max_age=24 * 60 * 60, **_cookie_kwargs())

#--------------------------------------------------------------------------------------------------------------------------------------------

# 5. Google Auth Configuration
oauth = OAuth()

oauth.register(
    name = "google",
    client_id = GOOGLE_CLIENT_ID,
    client_secret = GOOGLE_CLIENT_SECRET,
    server_metadata_url = "https://accounts.google.com/.well-known/openid-configuration",
    client_kwargs = {
        'scope' : 'openid email profile'
    }
)


async def fetch_google_userinfo(access_token: str) -> Dict[str, Any]:
    """Validates a Google access token (from the implicit flow fragment) against the userinfo endpoint."""
    try:
        user_info = await oauth.google.userinfo(token={"access_token": access_token, "token_type": "Bearer"})
    except (OAuthError, httpx.HTTPError) as exc:
        logger.warning("Google userinfo lookup failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid OAuth token")

    if not user_info or not user_info.get("email"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid OAuth token")
    return dict(user_info)


def random_password() -> str:
    # Social accounts never log in with a password, this just fills the column
    return hash_password(secrets.token_urlsafe(32))
