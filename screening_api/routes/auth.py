import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from screening_api.config import get_settings
from screening_api.database import get_db
from screening_api.models.user import User
from screening_api.services.rate_limiter import RateLimiter, get_client_ip, get_rate_limiter
from screening_api.services.user_service import (
    authenticate_user,
    get_user_by_id,
    record_login,
    user_summary,
)
from screening_api.services.validation import LoginRequest
from screening_api.utils.auth import (
    REFRESH_COOKIE,
    REFRESH_TOKEN_TYPE,
    clear_auth_cookies,
    create_token_pair,
    decode_token,
    get_current_user,
    require_admin,
    set_auth_cookies,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/auth", tags=["Authentication"])


def _session_expired(message: str) -> JSONResponse:
    response = JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"success": False, "error": message, "message": "Please log in again"},
    )
    clear_auth_cookies(response)
    return response


@router.post("/login")
def login(
    credentials: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """Log in an admin user and set the auth cookies"""
    client_ip = get_client_ip(request)
    limit = limiter.enforce(client_ip, "LOGIN", "Too many login attempts. Please try again later.")
    response.headers.update(limiter.create_rate_limit_headers(limit, "LOGIN"))

    user = authenticate_user(db, credentials.email, credentials.password)
    if not user:
        logger.warning("Failed login for %s from %s", credentials.email, client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is deactivated"
        )

    record_login(db, user)
    tokens = create_token_pair(user)
    set_auth_cookies(response, tokens["accessToken"], tokens["refreshToken"])
    logger.info("Admin login: %s from %s", user.email, client_ip)

    return {
        "success": True,
        "data": {
            "user": user_summary(user),
            "accessToken": tokens["accessToken"],
            "refreshToken": tokens["refreshToken"],
            "expiresIn": get_settings().ACCESS_TOKEN_TTL_MINUTES * 60,
        },
        "message": "Login successful",
    }


@router.post("/refresh")
def refresh_tokens(
    request: Request,
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """Rotate both tokens using the refresh cookie"""
    client_ip = get_client_ip(request)
    limit = limiter.enforce(client_ip, "REFRESH", "Too many refresh attempts")

    token = request.cookies.get(REFRESH_COOKIE)
    claims = decode_token(token, REFRESH_TOKEN_TYPE) if token else None
    if not claims:
        logger.warning("Invalid refresh token from %s", client_ip)
        return _session_expired("Invalid refresh token")

    user = get_user_by_id(db, claims["sub"])
    if not user or not user.is_active:
        logger.warning("Refresh refused for inactive or missing user %s", claims["sub"])
        return _session_expired("Invalid refresh token")

    tokens = create_token_pair(user)
    response = JSONResponse(
        content={
            "success": True,
            "data": {
                "user": user_summary(user),
                "accessToken": tokens["accessToken"],
                "refreshToken": tokens["refreshToken"],
            },
            "message": "Tokens refreshed successfully",
        },
        headers=limiter.create_rate_limit_headers(limit, "REFRESH"),
    )
    set_auth_cookies(response, tokens["accessToken"], tokens["refreshToken"])
    logger.info("Token refreshed for %s from %s", user.email, client_ip)
    return response


@router.post("/logout")
def logout(response: Response):
    """Clear the auth cookies"""
    clear_auth_cookies(response)
    return {"success": True, "data": {}, "message": "Logged out successfully"}


@router.post("/sessions/invalidate")
def invalidate_session(request: Request, response: Response, user: User = Depends(require_admin)):
    """Drop the current session cookies"""
    clear_auth_cookies(response)
    logger.info(
        "Session invalidated for %s from %s (%s)",
        user.email, get_client_ip(request), request.headers.get("user-agent", "")
    )
    return {
        "success": True,
        "data": {"invalidated": True},
        "message": "Session invalidated successfully",
    }


@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    """Current principal"""
    return {"success": True, "data": user_summary(user)}
