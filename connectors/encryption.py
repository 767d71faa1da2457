"""
Token encryption — encrypt / decrypt OAuth tokens at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
The encryption key is loaded from ``config.token_encryption_key``
(env var: ``TOKEN_ENCRYPTION_KEY``) and is required: with no key, or a
ciphertext that fails authentication, ``TokenEncryptionError`` is raised.
Generate a key with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from config.settings import config
from connectors.errors import TokenEncryptionError

logger = logging.getLogger(__name__)

_fernet: Optional[Fernet] = None


def _get_fernet() -> Fernet:
    """Lazy-initialise the Fernet cipher once."""
    global _fernet
    if _fernet is not None:
        return _fernet

    key = config.token_encryption_key
    if not key:
        raise TokenEncryptionError(
            "TOKEN_ENCRYPTION_KEY not set — refusing to store OAuth tokens in plaintext"
        )
    try:
        _fernet = Fernet(key.encode() if isinstance(key, str) else key)
    except (ValueError, TypeError) as exc:
        logger.error("Failed to initialise Fernet with provided key: %s", exc)
        raise TokenEncryptionError(f"Invalid TOKEN_ENCRYPTION_KEY: {exc}") from exc
    logger.info("Token encryption enabled (Fernet/AES-128-CBC)")
    return _fernet


def reset_cipher() -> None:
    """Forget the cached cipher so the next call re-reads the key."""
    global _fernet
    _fernet = None


def encrypt_token(plaintext: str) -> str:
    """Encrypt a token string for database storage (URL-safe base64)."""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt_token(ciphertext: str) -> str:
    """Decrypt a token string read from the database."""
    try:
        return _get_fernet().decrypt(ciphertext.encode()).decode()
    except InvalidToken as exc:
        logger.error("Stored token failed authentication — wrong key or tampered row")
        raise TokenEncryptionError("Stored token could not be decrypted") from exc


def encrypt_optional(plaintext: Optional[str]) -> Optional[str]:
    return encrypt_token(plaintext) if plaintext else None


def decrypt_optional(ciphertext: Optional[str]) -> Optional[str]:
    return decrypt_token(ciphertext) if ciphertext else None
