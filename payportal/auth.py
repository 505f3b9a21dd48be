"""Cookie-based session, anti-forgery and role dependencies for API routes."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable

from fastapi import Depends, HTTPException, Request, Response, status

from payportal.core.config import settings
from payportal.models.user import CUSTOMER_ROLE, EMPLOYEE_ROLE
from payportal.services import rate_limiter as rate_limiter_module
from payportal.services.errors import RateLimited
from payportal.services.session_service import (
    InvalidSession,
    SessionClaims,
    SessionInvalidReason,
    SessionMaterial,
    read_session,
    renew_session,
)
from payportal.utils.time import to_epoch, utcnow

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session-token"
CSRF_COOKIE = "csrf-token"
CSRF_HEADER = "X-CSRF-Token"


def set_csrf_cookie(response: Response, csrf_token: str, max_age: int | None = None) -> None:
    response.set_cookie(
        CSRF_COOKIE,
        csrf_token,
        max_age=max_age or settings.session_absolute_timeout_seconds,
        path="/",
        secure=settings.session_cookie_secure,
        httponly=False,
        samesite="strict",
    )


def set_session_cookies(response: Response, material: SessionMaterial) -> None:
    """Attach a newly issued token (and anti-forgery token, if rotated)."""
    max_age = max(material.claims.absolute_expiry - to_epoch(utcnow()), 0)
    response.set_cookie(
        SESSION_COOKIE,
        material.token,
        max_age=max_age,
        path="/",
        secure=settings.session_cookie_secure,
        httponly=True,
        samesite="strict",
    )
    if material.csrf_token is not None:
        set_csrf_cookie(response, material.csrf_token, max_age=max_age)


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/", secure=settings.session_cookie_secure, httponly=True, samesite="strict")
    response.delete_cookie(CSRF_COOKIE, path="/", secure=settings.session_cookie_secure, samesite="strict")


def _token_from_request(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


def get_current_session(request: Request, response: Response) -> SessionClaims:
    """Resolve the caller's session, renewing it when close to idle expiry."""
    state = read_session(_token_from_request(request))
    if isinstance(state, InvalidSession):
        detail = "Authentication required"
        if state.reason in (SessionInvalidReason.IDLE_TIMEOUT, SessionInvalidReason.ABSOLUTE_TIMEOUT):
            detail = "Session expired"
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"X-Session-Invalid-Reason": state.reason.value},
        )
    if state.needs_renewal:
        material = renew_session(state.claims)
        set_session_cookies(response, material)
        return material.claims
    return state.claims


def require_csrf(request: Request) -> None:
    """Double-submit check: header must equal the readable cookie."""
    cookie_token = request.cookies.get(CSRF_COOKIE)
    header_token = request.headers.get(CSRF_HEADER)
    if not cookie_token or not header_token or not secrets.compare_digest(cookie_token, header_token):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid CSRF token")


def require_role(*roles: str) -> Callable[[SessionClaims], SessionClaims]:
    """Build a role-check dependency on top of the current session."""

    allowed = set(roles)

    def _checker(claims: SessionClaims = Depends(get_current_session)) -> SessionClaims:
        if claims.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return claims

    return _checker


require_employee = require_role(EMPLOYEE_ROLE)
require_customer = require_role(CUSTOMER_ROLE)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def rate_limit(bucket: str) -> Callable[[Request], None]:
    """Build a dependency that counts the request against ``bucket``."""

    def _limiter(request: Request) -> None:
        decision = rate_limiter_module.rate_limiter.check_and_record(client_ip(request), bucket)
        if not decision.allowed:
            logger.warning("[RATE] %s limit hit for %s", bucket, client_ip(request))
            raise RateLimited(decision.retry_after)

    return _limiter
