"""
Authentication helpers
Password hashing, access/refresh JWTs, auth cookies and the request guards
used by every admin route
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import bcrypt
from fastapi import Depends, HTTPException, Request, Response, status
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from screening_api.config import get_settings
from screening_api.database import get_db
from screening_api.models.user import User

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "health-screening-access"
REFRESH_COOKIE = "health-screening-refresh"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


# ========== PASSWORDS ==========

def hash_password(password: str) -> str:
    """Hash password using bcrypt"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Verify password against hash"""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


# ========== TOKENS ==========

def _token_claims(user: User, token_type: str, expires_delta: timedelta) -> Dict:
    now = datetime.now(timezone.utc)
    return {
        "sub": user.user_id,
        "email": user.email,
        "role": user.role,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
    }


def create_access_token(user: User) -> str:
    settings = get_settings()
    claims = _token_claims(user, ACCESS_TOKEN_TYPE, timedelta(minutes=settings.ACCESS_TOKEN_TTL_MINUTES))
    return jwt.encode(claims, settings.jwt_secret(), algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(user: User) -> str:
    settings = get_settings()
    claims = _token_claims(user, REFRESH_TOKEN_TYPE, timedelta(days=settings.REFRESH_TOKEN_TTL_DAYS))
    return jwt.encode(claims, settings.jwt_refresh_secret(), algorithm=settings.JWT_ALGORITHM)


def create_token_pair(user: User) -> Dict[str, str]:
    return {"accessToken": create_access_token(user), "refreshToken": create_refresh_token(user)}


def decode_token(token: str, token_type: str) -> Optional[Dict]:
    """Verified claims, or None when the token is expired, forged or of the wrong type"""
    settings = get_settings()
    secret = settings.jwt_refresh_secret() if token_type == REFRESH_TOKEN_TYPE else settings.jwt_secret()
    try:
        claims = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        logger.info("Rejected expired %s token", token_type)
        return None
    except JWTError:
        logger.info("Rejected invalid %s token", token_type)
        return None

    if claims.get("type") != token_type or not claims.get("sub"):
        return None
    return claims


# ========== COOKIES ==========

def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=settings.ACCESS_TOKEN_TTL_MINUTES * 60,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=settings.REFRESH_TOKEN_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def clear_auth_cookies(response: Response) -> None:
    settings = get_settings()
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, path="/", secure=settings.COOKIE_SECURE, httponly=True, samesite="lax")


def get_access_token(request: Request) -> Optional[str]:
    """Access cookie first, then an Authorization: Bearer header"""
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


# ========== GUARDS ==========

def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Authenticated, active user behind the request"""
    token = get_access_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    claims = decode_token(token, ACCESS_TOKEN_TYPE)
    if not claims:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token"
        )

    user = db.query(User).filter(User.user_id == claims["sub"]).first()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token"
        )
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Guard for every privileged route"""
    if user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user
