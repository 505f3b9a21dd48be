"""Session lifecycle: creation, validation, idle renewal and rotation.

Sessions are not stored. A session is the claims set inside a signed token:

* ``idle_exp`` moves forward on renewal but never past ``abs_exp``;
* ``abs_exp`` is fixed at creation and doubles as the token ``exp``;
* rotation discards the old session id and anti-forgery token entirely.

Every operation returns new session material explicitly; attaching it to a
response is the HTTP layer's job.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from payportal.core.config import settings
from payportal.core.security import DecodedToken, TokenFailure, decode_token, issue_token
from payportal.models import Customer, Employee
from payportal.utils.time import from_epoch, to_epoch, utcnow

logger = logging.getLogger(__name__)


class SessionInvalidReason(str, Enum):
    MISSING = "missing"
    MALFORMED = "malformed"
    IDLE_TIMEOUT = "idle_timeout"
    ABSOLUTE_TIMEOUT = "absolute_timeout"


@dataclass(frozen=True)
class SessionClaims:
    subject: str
    user_name: str
    full_name: str
    role: str
    session_id: str
    issued_at: int
    last_activity: int
    idle_expiry: int
    absolute_expiry: int

    @property
    def subject_id(self) -> int:
        return int(self.subject)

    @property
    def idle_expires_at(self) -> datetime:
        return from_epoch(self.idle_expiry)

    @property
    def absolute_expires_at(self) -> datetime:
        return from_epoch(self.absolute_expiry)

    def to_claims(self) -> dict[str, Any]:
        return {
            "sub": self.subject,
            "uname": self.user_name,
            "name": self.full_name,
            "role": self.role,
            "sid": self.session_id,
            "iat": self.issued_at,
            "lat": self.last_activity,
            "idle_exp": self.idle_expiry,
            "abs_exp": self.absolute_expiry,
            "exp": self.absolute_expiry,
        }

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "SessionClaims":
        return cls(
            subject=str(claims["sub"]),
            user_name=str(claims["uname"]),
            full_name=str(claims.get("name", "")),
            role=str(claims["role"]),
            session_id=str(claims["sid"]),
            issued_at=int(claims["iat"]),
            last_activity=int(claims["lat"]),
            idle_expiry=int(claims["idle_exp"]),
            absolute_expiry=int(claims["abs_exp"]),
        )

    def is_consistent(self) -> bool:
        return (
            self.issued_at <= self.last_activity < self.idle_expiry <= self.absolute_expiry
        )


@dataclass(frozen=True)
class SessionMaterial:
    """A freshly signed token plus, on create/rotate, a new anti-forgery token.

    ``csrf_token`` is ``None`` for a renewal: the existing one stays valid.
    """

    token: str
    claims: SessionClaims
    csrf_token: str | None = None


@dataclass(frozen=True)
class ValidSession:
    claims: SessionClaims
    needs_renewal: bool


@dataclass(frozen=True)
class InvalidSession:
    reason: SessionInvalidReason


def _actor_user_name(actor: Customer | Employee) -> str:
    if isinstance(actor, Employee):
        return actor.employee_id
    return actor.user_name


def create_session(actor: Customer | Employee, now: datetime | None = None) -> SessionMaterial:
    """Issue a brand-new session (fresh id, anti-forgery token and expiries)."""
    now = now or utcnow()
    issued = to_epoch(now)
    absolute_expiry = issued + settings.session_absolute_timeout_seconds
    claims = SessionClaims(
        subject=str(actor.id),
        user_name=_actor_user_name(actor),
        full_name=actor.full_name,
        role=actor.role,
        session_id=str(uuid.uuid4()),
        issued_at=issued,
        last_activity=issued,
        idle_expiry=min(issued + settings.session_idle_timeout_seconds, absolute_expiry),
        absolute_expiry=absolute_expiry,
    )
    token = issue_token(claims.to_claims())
    return SessionMaterial(token=token, claims=claims, csrf_token=secrets.token_urlsafe(32))


def rotate_session(actor: Customer | Employee, now: datetime | None = None) -> SessionMaterial:
    """Replace the caller's session identity after login or a sensitive action."""
    material = create_session(actor, now=now)
    logger.info("[SESSION] Rotated session for %s", material.claims.user_name)
    return material


def read_session(token: str | None, now: datetime | None = None) -> ValidSession | InvalidSession:
    """Derive the session state for ``token`` at ``now``. Never raises."""
    if not token:
        return InvalidSession(SessionInvalidReason.MISSING)
    now = now or utcnow()
    decoded = decode_token(token, now=now)
    if not isinstance(decoded, DecodedToken):
        if decoded.reason is TokenFailure.EXPIRED:
            return InvalidSession(SessionInvalidReason.ABSOLUTE_TIMEOUT)
        return InvalidSession(SessionInvalidReason.MALFORMED)

    try:
        claims = SessionClaims.from_claims(decoded.claims)
    except (KeyError, TypeError, ValueError):
        return InvalidSession(SessionInvalidReason.MALFORMED)
    if not claims.is_consistent():
        return InvalidSession(SessionInvalidReason.MALFORMED)

    current = to_epoch(now)
    if current >= claims.absolute_expiry:
        return InvalidSession(SessionInvalidReason.ABSOLUTE_TIMEOUT)
    if current >= claims.idle_expiry:
        return InvalidSession(SessionInvalidReason.IDLE_TIMEOUT)
    needs_renewal = claims.idle_expiry - current < settings.session_renewal_threshold_seconds
    return ValidSession(claims=claims, needs_renewal=needs_renewal)


def renew_session(claims: SessionClaims, now: datetime | None = None) -> SessionMaterial:
    """Slide the idle window forward; the absolute expiry does not move.

    The previous token stays valid until its own expiry.
    """
    current = to_epoch(now or utcnow())
    renewed = replace(
        claims,
        last_activity=current,
        idle_expiry=min(current + settings.session_idle_timeout_seconds, claims.absolute_expiry),
    )
    return SessionMaterial(token=issue_token(renewed.to_claims()), claims=renewed)