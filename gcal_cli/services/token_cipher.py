"""Symmetric encryption for sealing token records at rest."""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken


class TokenCipherService:
    """Seal and unseal serialized token records with a derived Fernet key."""

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def seal(self, payload: bytes) -> bytes:
        """Encrypt and authenticate ``payload``."""
        return self._fernet.encrypt(payload)

    def unseal(self, sealed: bytes) -> bytes:
        """Verify and decrypt bytes produced by :meth:`seal`.

        Raises ``ValueError`` for truncated, tampered or foreign ciphertext.
        """
        try:
            return self._fernet.decrypt(sealed)
        except InvalidToken as exc:
            raise ValueError("Failed to unseal token record; invalid ciphertext.") from exc


__all__ = ["TokenCipherService"]
