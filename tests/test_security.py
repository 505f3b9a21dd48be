"""Password hashing, token codec, second factor and field encryption tests."""

import base64
from datetime import datetime, timedelta, timezone

import pyotp
import pytest
from cryptography.exceptions import InvalidTag

from payportal.core import field_encryption
from payportal.core.config import settings
from payportal.core.field_encryption import decrypt_field, encrypt_field
from payportal.core.security import (
    DecodedToken,
    InvalidToken,
    TokenFailure,
    decode_token,
    generate_totp_secret,
    get_password_hash,
    issue_token,
    totp_provisioning_uri,
    verify_password,
    verify_second_factor,
)
from payportal.services.errors import ConfigurationError
from payportal.utils.time import to_epoch

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
FIELD_KEY = "a1" * 32


def _claims(issued: datetime, lifetime_seconds: int = 1800) -> dict:
    iat = to_epoch(issued)
    return {"sub": "1", "sid": "session-1", "iat": iat, "exp": iat + lifetime_seconds}


def test_password_hash_round_trip() -> None:
    hashed = get_password_hash("correct horse")

    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed) is True
    assert verify_password("wrong horse", hashed) is False


def test_verify_password_fails_closed_on_garbage_digest() -> None:
    assert verify_password("anything", "not-a-passlib-digest") is False
    assert verify_password("", get_password_hash("x")) is False


def test_empty_password_cannot_be_hashed() -> None:
    with pytest.raises(ValueError):
        get_password_hash("")


def test_decode_token_returns_claims_with_pinned_issuer_and_audience() -> None:
    token = issue_token(_claims(T0))

    result = decode_token(token, now=T0 + timedelta(seconds=10))

    assert isinstance(result, DecodedToken)
    assert result.claims["sub"] == "1"
    assert result.claims["iss"] == settings.jwt_issuer
    assert result.claims["aud"] == settings.jwt_audience
    assert result.claims["jti"] == "session-1"
    assert result.claims["nbf"] == to_epoch(T0)


def test_decode_token_classifies_expiry() -> None:
    token = issue_token(_claims(T0, lifetime_seconds=60))

    assert isinstance(decode_token(token, now=T0 + timedelta(seconds=59)), DecodedToken)
    assert decode_token(token, now=T0 + timedelta(seconds=60)) == InvalidToken(TokenFailure.EXPIRED)


def test_decode_token_rejects_tampering_and_foreign_audience(monkeypatch) -> None:
    token = issue_token(_claims(T0))
    head, body, signature = token.split(".")
    tampered = ".".join([head, body, signature[::-1]])

    assert decode_token(tampered, now=T0) == InvalidToken(TokenFailure.MALFORMED)
    assert decode_token("", now=T0) == InvalidToken(TokenFailure.MALFORMED)
    assert decode_token("not.a.token", now=T0) == InvalidToken(TokenFailure.MALFORMED)

    monkeypatch.setattr(settings, "jwt_audience", "another-service")
    foreign = issue_token(_claims(T0))
    monkeypatch.undo()
    assert decode_token(foreign, now=T0) == InvalidToken(TokenFailure.MALFORMED)


def test_token_not_yet_valid_is_malformed() -> None:
    token = issue_token(_claims(T0))

    assert decode_token(token, now=T0 - timedelta(seconds=5)) == InvalidToken(TokenFailure.MALFORMED)


def test_issue_token_requires_secret(monkeypatch) -> None:
    monkeypatch.setattr(settings, "jwt_secret_key", "")

    with pytest.raises(ConfigurationError):
        issue_token(_claims(T0))


def test_second_factor_accepts_current_code_and_one_step_of_drift(monkeypatch) -> None:
    monkeypatch.setattr(settings, "field_enc_key", FIELD_KEY)
    secret = generate_totp_secret()
    encrypted = encrypt_field(secret)
    totp = pyotp.TOTP(secret)

    assert encrypted != secret
    assert verify_second_factor(encrypted, totp.at(T0), now=T0) is True
    assert verify_second_factor(encrypted, totp.at(T0 - timedelta(seconds=30)), now=T0) is True
    assert verify_second_factor(encrypted, totp.at(T0 - timedelta(minutes=5)), now=T0) is False
    assert verify_second_factor(encrypted, None, now=T0) is False
    assert verify_second_factor(None, totp.at(T0), now=T0) is False


def test_second_factor_with_undecryptable_secret_fails_closed(monkeypatch) -> None:
    monkeypatch.setattr(settings, "field_enc_key", FIELD_KEY)

    assert verify_second_factor("definitely-not-ciphertext", "123456", now=T0) is False


def test_second_factor_with_missing_production_key_fails_closed(monkeypatch) -> None:
    monkeypatch.setattr(settings, "app_env", "production")
    monkeypatch.setattr(settings, "field_enc_key", "")

    assert verify_second_factor("JBSWY3DPEHPK3PXP", "123456", now=T0) is False


def test_provisioning_uri_names_account_and_issuer() -> None:
    uri = totp_provisioning_uri(generate_totp_secret(), "EMP001")

    assert uri.startswith("otpauth://totp/")
    assert "EMP001" in uri
    assert f"issuer={settings.jwt_issuer}" in uri


def test_field_encryption_detects_tampering(monkeypatch) -> None:
    monkeypatch.setattr(settings, "field_enc_key", FIELD_KEY)
    sealed = encrypt_field("JBSWY3DPEHPK3PXP")

    assert decrypt_field(sealed) == "JBSWY3DPEHPK3PXP"
    assert encrypt_field("JBSWY3DPEHPK3PXP") != sealed

    raw = bytearray(base64.b64decode(sealed))
    raw[-1] ^= 0x01
    with pytest.raises(InvalidTag):
        decrypt_field(base64.b64encode(bytes(raw)).decode("ascii"))


def test_field_encryption_key_validation(monkeypatch) -> None:
    monkeypatch.setattr(settings, "field_enc_key", "abcd")
    with pytest.raises(ConfigurationError):
        encrypt_field("secret")

    monkeypatch.setattr(settings, "field_enc_key", "zz" * 32)
    with pytest.raises(ConfigurationError):
        encrypt_field("secret")


def test_missing_field_key_is_fatal_only_in_production(monkeypatch) -> None:
    monkeypatch.setattr(settings, "field_enc_key", "")
    assert encrypt_field("plain") == "plain"
    assert field_encryption.decrypt_field("plain") == "plain"

    monkeypatch.setattr(settings, "app_env", "production")
    with pytest.raises(ConfigurationError):
        encrypt_field("plain")
