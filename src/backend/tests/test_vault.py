"""Tests for SecretVault: key loading, sealing and opening secret values."""

import base64

import pytest

from deployhub.errors import DecryptionError, EncryptionError
from deployhub.security.vault import SecretVault

RAW_KEY = bytes(range(224, 256))
STD_KEY = base64.b64encode(RAW_KEY).decode()
URLSAFE_KEY = base64.urlsafe_b64encode(RAW_KEY).decode()
OTHER_KEY = base64.b64encode(b"z" * 32).decode()


@pytest.fixture
def vault() -> SecretVault:
    return SecretVault(STD_KEY)


class TestKeyLoading:
    def test_standard_and_urlsafe_alphabets_are_the_same_key(self):
        assert STD_KEY != URLSAFE_KEY
        sealed = SecretVault(STD_KEY).encrypt("hunter2")
        assert SecretVault(URLSAFE_KEY).decrypt(sealed) == b"hunter2"

    @pytest.mark.parametrize("key", [None, ""])
    def test_missing_key_raises(self, key):
        with pytest.raises(EncryptionError, match="not configured"):
            SecretVault(key)

    def test_short_key_raises(self):
        with pytest.raises(EncryptionError, match="32 bytes"):
            SecretVault(base64.b64encode(b"too-short").decode())

    def test_non_base64_key_raises(self):
        with pytest.raises(EncryptionError):
            SecretVault("!!! not base64 !!!")


class TestSealing:
    def test_roundtrip(self, vault):
        assert vault.decrypt(vault.encrypt("postgres://u:p@db/app")) == b"postgres://u:p@db/app"

    def test_bytes_are_accepted(self, vault):
        assert vault.decrypt(vault.encrypt(b"\x00\x01binary")) == b"\x00\x01binary"

    def test_ciphertext_does_not_contain_plaintext(self, vault):
        assert b"hunter2" not in vault.encrypt("hunter2")

    def test_same_plaintext_seals_differently(self, vault):
        assert vault.encrypt("hunter2") != vault.encrypt("hunter2")

    def test_wrong_key_fails_authentication(self, vault):
        sealed = vault.encrypt("hunter2")
        with pytest.raises(DecryptionError):
            SecretVault(OTHER_KEY).decrypt(sealed)

    def test_tampered_ciphertext_fails(self, vault):
        sealed = bytearray(vault.encrypt("hunter2"))
        sealed[-5] ^= 0x01
        with pytest.raises(DecryptionError):
            vault.decrypt(bytes(sealed))

    def test_bulk_helpers(self, vault):
        sealed = vault.encrypt_all({"API_KEY": "abc", "DB_PASSWORD": "xyz"})
        assert set(sealed) == {"API_KEY", "DB_PASSWORD"}
        assert all(isinstance(v, bytes) for v in sealed.values())
        assert vault.decrypt_all(sealed) == {"API_KEY": "abc", "DB_PASSWORD": "xyz"}
