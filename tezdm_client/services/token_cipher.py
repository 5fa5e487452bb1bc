"""Symmetric encryption and checksums for stored credentials."""

from __future__ import annotations

import base64
import hashlib
import hmac

from cryptography.fernet import Fernet, InvalidToken


class CredentialCipher:
    """Encrypt credential records and sign their contents for tamper checks."""

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Credential encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))
        # Checksum key is derived independently of the Fernet key.
        self._mac_key = hashlib.sha256(b"checksum:" + secret.encode("utf-8")).digest()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string and return the ciphertext."""
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return token.decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a ciphertext string and return the plaintext."""
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError(
                "Failed to decrypt credentials; invalid ciphertext provided."
            ) from exc
        return plaintext.decode("utf-8")

    def checksum(self, payload: str) -> str:
        """Return a hex HMAC-SHA256 of ``payload``."""
        return hmac.new(self._mac_key, payload.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, payload: str, checksum: str) -> bool:
        return hmac.compare_digest(self.checksum(payload), checksum)


__all__ = ["CredentialCipher"]
