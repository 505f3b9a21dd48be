"""Credential verification and signed session token primitives."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import pyotp
from cryptography.exceptions import InvalidTag
from jose import JWTError, jwt
from passlib.context import CryptContext

from payportal.core.config import settings
from payportal.core.field_encryption import decrypt_field
from payportal.services.errors import ConfigurationError
from payportal.utils.time import to_epoch, utcnow

logger = logging.getLogger(__name__)

pwd_context: CryptContext = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def get_password_hash(password: str) -> str:
    """Hash a plaintext password."""
    if not password:
        raise ValueError("Password must not be empty")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against its hash; malformed digests fail closed."""
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        logger.warning("[AUTH] Password digest could not be evaluated")
        return False


def generate_totp_secret() -> str:
    return pyotp.random_base32()


def totp_provisioning_uri(secret: str, account_name: str) -> str:
    return pyotp.TOTP(secret).provisioning_uri(name=account_name, issuer_name=settings.jwt_issuer)


def verify_second_factor(encrypted_secret: str | None, code: str | None, now: datetime | None = None) -> bool:
    """Check a time-based one-time code against an encrypted enrollment secret.

    Accepts one step of clock drift either side. Any decrypt or verify failure
    is reported as ``False``.
    """
    if not encrypted_secret or not code:
        return False
    try:
        secret = decrypt_field(encrypted_secret)
    except ConfigurationError:
        logger.error("[AUTH] Second-factor secret cannot be decrypted: field key misconfigured")
        return False
    except (InvalidTag, ValueError, TypeError):
        logger.warning("[AUTH] Second-factor secret could not be decrypted", exc_info=True)
        return False
    try:
        return pyotp.TOTP(secret).verify(str(code).strip(), for_time=now or utcnow(), valid_window=1)
    except (ValueError, TypeError):
        logger.warning("[AUTH] Second-factor verification error", exc_info=True)
        return False


class TokenFailure(str, Enum):
    EXPIRED = "expired"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class DecodedToken:
    claims: dict[str, Any]


@dataclass(frozen=True)
class InvalidToken:
    reason: TokenFailure


def issue_token(claims: dict[str, Any]) -> str:
    """Sign ``claims`` with the pinned issuer, audience and algorithm.

    ``claims`` must carry ``iat`` and ``exp`` as epoch seconds; ``nbf`` is set
    to the issue time and ``jti`` mirrors the session id.
    """
    if not settings.jwt_secret_key:
        raise ConfigurationError("JWT_SECRET_KEY is not set")
    to_encode: dict[str, Any] = claims.copy()
    to_encode.update(
        {
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
            "nbf": claims["iat"],
        }
    )
    if "sid" in claims:
        to_encode["jti"] = claims["sid"]
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str | None, now: datetime | None = None) -> DecodedToken | InvalidToken:
    """Verify ``token`` and return its claims or a classified failure.

    Time-based claims are checked against ``now`` rather than the library clock
    so expiry is testable with an injected clock. Never raises.
    """
    if not token or not settings.jwt_secret_key:
        return InvalidToken(TokenFailure.MALFORMED)
    try:
        claims: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"verify_exp": False, "verify_nbf": False},
        )
    except JWTError:
        return InvalidToken(TokenFailure.MALFORMED)

    exp = claims.get("exp")
    nbf = claims.get("nbf", 0)
    if not isinstance(exp, (int, float)) or not isinstance(nbf, (int, float)):
        return InvalidToken(TokenFailure.MALFORMED)
    current = to_epoch(now or utcnow())
    if current < nbf:
        return InvalidToken(TokenFailure.MALFORMED)
    if current >= exp:
        return InvalidToken(TokenFailure.EXPIRED)
    return DecodedToken(claims)
