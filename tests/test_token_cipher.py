try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from patron_gate.services.token_cipher import TokenCipherService, TokenDecryptionError


def test_token_cipher_roundtrip() -> None:
    cipher = TokenCipherService(secrets=["super-secret-key"])
    plaintext = "sensitive-token"

    encrypted = cipher.encrypt(plaintext)
    assert encrypted != plaintext

    decrypted = cipher.decrypt(encrypted)
    assert decrypted == plaintext


def test_token_cipher_rejects_bad_ciphertext() -> None:
    cipher = TokenCipherService(secrets=["another-secret"])

    with pytest.raises(TokenDecryptionError):
        cipher.decrypt("not-valid")


def test_prepended_secret_keeps_old_ciphertext_readable() -> None:
    old = TokenCipherService(secrets=["old"])
    rotated = TokenCipherService(secrets=["new", "old"])
    ciphertext = old.encrypt("token")

    assert rotated.decrypt(ciphertext) == "token"
    with pytest.raises(TokenDecryptionError):
        old.decrypt(rotated.encrypt("token"))


@pytest.mark.parametrize("secrets", [[], [""], ["", ""]])
def test_token_cipher_requires_a_secret(secrets) -> None:
    with pytest.raises(ValueError):
        TokenCipherService(secrets=secrets)
