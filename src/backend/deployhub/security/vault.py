"""Symmetric encryption of deployment secret values at rest.

The provisioned key is 32 random bytes in base64 (``openssl rand -base64 32``);
both the standard and the URL-safe alphabet are accepted. Values are sealed
with Fernet, so a wrong key and tampered ciphertext both fail authentication.
"""

import base64
import binascii
import logging

from cryptography.fernet import Fernet, InvalidToken

from deployhub.errors import DecryptionError, EncryptionError

log = logging.getLogger(__name__)

_KEY_BYTES = 32


def _load_key(key: str | None) -> bytes:
    if not key:
        raise EncryptionError("Encryption key is not configured")
    normalized = key.strip().replace("+", "-").replace("/", "_")
    try:
        raw = base64.urlsafe_b64decode(normalized)
    except (binascii.Error, ValueError) as exc:
        raise EncryptionError("Encryption key is not valid base64") from exc
    if len(raw) != _KEY_BYTES:
        raise EncryptionError(
            f"Encryption key must decode to {_KEY_BYTES} bytes, got {len(raw)}"
        )
    return base64.urlsafe_b64encode(raw)


class SecretVault:
    """Stateless apart from the key. Construct once at startup so a missing or
    malformed key stops the service instead of failing the first request."""

    def __init__(self, key: str | None) -> None:
        self._fernet = Fernet(_load_key(key))

    def encrypt(self, plaintext: str | bytes) -> bytes:
        data = plaintext.encode() if isinstance(plaintext, str) else plaintext
        try:
            return self._fernet.encrypt(data)
        except (TypeError, ValueError) as exc:
            raise EncryptionError("Failed to encrypt secret value") from exc

    def decrypt(self, ciphertext: bytes) -> bytes:
        try:
            return self._fernet.decrypt(ciphertext)
        except (InvalidToken, TypeError, ValueError) as exc:
            log.warning("Secret decryption failed: key mismatch or corrupt ciphertext")
            raise DecryptionError("Failed to decrypt secret value") from exc

    def encrypt_all(self, secrets: dict[str, str]) -> dict[str, bytes]:
        return {key: self.encrypt(value) for key, value in secrets.items()}

    def decrypt_all(self, sealed: dict[str, bytes]) -> dict[str, str]:
        return {key: self.decrypt(value).decode() for key, value in sealed.items()}
