"""Encrypted file storage and sharing core."""

from .errors import (
    VaultError,
    NotFoundError,
    PermissionDeniedError,
    IntegrityError,
    EncryptionError,
    DecryptionError,
    ConflictError,
    StorageIOError,
)

__all__ = [
    "VaultError",
    "NotFoundError",
    "PermissionDeniedError",
    "IntegrityError",
    "EncryptionError",
    "DecryptionError",
    "ConflictError",
    "StorageIOError",
]

__version__ = "0.1.0"
