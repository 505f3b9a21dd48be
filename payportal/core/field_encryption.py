"""Field-level encryption for secrets stored at rest (AES-256-GCM)."""

from __future__ import annotations

import base64
import logging
import os
from functools import lru_cache

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from payportal.core.config import settings
from payportal.services.errors import ConfigurationError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12


@lru_cache(maxsize=1)
def _warn_plaintext_mode() -> None:
    logger.warning("[CRYPTO] FIELD_ENC_KEY not set; field-level encryption disabled.")


def _field_key() -> bytes | None:
    key_hex = settings.field_enc_key.strip()
    if not key_hex:
        if settings.app_env == "production":
            raise ConfigurationError("FIELD_ENC_KEY must be set in production")
        _warn_plaintext_mode()
        return None
    try:
        key = bytes.fromhex(key_hex)
    except ValueError as exc:
        raise ConfigurationError("FIELD_ENC_KEY must be hex encoded") from exc
    if len(key) != 32:
        raise ConfigurationError("FIELD_ENC_KEY must decode to 32 bytes")
    return key


def encrypt_field(plain_text: str) -> str:
    """Encrypt ``plain_text`` into base64(nonce || ciphertext || tag)."""
    key = _field_key()
    if key is None:
        return plain_text
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(key).encrypt(nonce, plain_text.encode("utf-8"), None)
    return base64.b64encode(nonce + sealed).decode("ascii")


def decrypt_field(cipher_text: str) -> str:
    """Reverse :func:`encrypt_field`.

    Raises on a wrong key, truncated input or tampered ciphertext; callers that
    must fail closed are expected to catch.
    """
    key = _field_key()
    if key is None:
        return cipher_text
    data = base64.b64decode(cipher_text, validate=True)
    if len(data) <= NONCE_SIZE:
        raise ValueError("Encrypted field is truncated")
    nonce, sealed = data[:NONCE_SIZE], data[NONCE_SIZE:]
    return AESGCM(key).decrypt(nonce, sealed, None).decode("utf-8")
