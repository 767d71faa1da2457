"""
Tests for Fernet token encryption.
"""

import pytest
from cryptography.fernet import Fernet

from config.settings import config
from connectors.encryption import (
    decrypt_optional,
    decrypt_token,
    encrypt_optional,
    encrypt_token,
    reset_cipher,
)
from connectors.errors import TokenEncryptionError


class TestEncryption:
    def test_round_trip(self):
        ciphertext = encrypt_token("ya29.secret")
        assert ciphertext != "ya29.secret"
        assert decrypt_token(ciphertext) == "ya29.secret"

    def test_optional_helpers_pass_none_through(self):
        assert encrypt_optional(None) is None
        assert decrypt_optional(None) is None
        assert decrypt_optional(encrypt_optional("x")) == "x"

    def test_missing_key_refuses(self, monkeypatch):
        monkeypatch.setattr(config, "token_encryption_key", "")
        reset_cipher()
        with pytest.raises(TokenEncryptionError):
            encrypt_token("secret")

    def test_invalid_key(self, monkeypatch):
        monkeypatch.setattr(config, "token_encryption_key", "not-a-fernet-key")
        reset_cipher()
        with pytest.raises(TokenEncryptionError):
            encrypt_token("secret")

    def test_tampered_ciphertext(self):
        ciphertext = encrypt_token("secret")
        tampered = ciphertext[:-4] + ("AAAA" if not ciphertext.endswith("AAAA") else "BBBB")
        with pytest.raises(TokenEncryptionError):
            decrypt_token(tampered)

    def test_wrong_key(self, monkeypatch):
        ciphertext = encrypt_token("secret")
        monkeypatch.setattr(config, "token_encryption_key", Fernet.generate_key().decode())
        reset_cipher()
        with pytest.raises(TokenEncryptionError):
            decrypt_token(ciphertext)
