"""Cipher engine for encrypted file storage."""

from .cipher import (
    ALGORITHM,
    CipherParams,
    EncryptionResult,
    encrypt,
    encrypt_stream,
    decrypt,
    decrypt_stream,
    compute_digest,
    generate_key,
    generate_iv,
)

__all__ = [
    "ALGORITHM",
    "CipherParams",
    "EncryptionResult",
    "encrypt",
    "encrypt_stream",
    "decrypt",
    "decrypt_stream",
    "compute_digest",
    "generate_key",
    "generate_iv",
]
