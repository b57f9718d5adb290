"""Symmetric encryption for OAuth tokens stored at rest."""

from __future__ import annotations

import base64
import hashlib
from typing import Sequence

from cryptography.fernet import Fernet, InvalidToken, MultiFernet


def _derive_key(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


class TokenDecryptionError(ValueError):
    """Raised when a stored token cannot be decrypted with any known key."""


class TokenCipherService:
    """
    Encrypt and decrypt tokens with keys derived from one or more secrets.

    The first secret encrypts; all of them are tried when decrypting, so a
    new secret can be prepended without invalidating stored records.
    """

    def __init__(self, *, secrets: Sequence[str]) -> None:
        usable = [secret for secret in secrets if secret]
        if not usable:
            raise ValueError("At least one token encryption secret must be provided.")
        self._fernet = MultiFernet([_derive_key(secret) for secret in usable])

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise TokenDecryptionError(
                "Failed to decrypt token; it was written with an unknown key."
            ) from exc
        return plaintext.decode("utf-8")


__all__ = ["TokenCipherService", "TokenDecryptionError"]
