"""
Error kinds raised by the vault core.

Every error carries a stable ``code`` so callers (an HTTP layer, the CLI)
can map it to a response without parsing messages.
"""


class VaultError(Exception):
    code = "vault_error"


class NotFoundError(VaultError):
    """File or share grant is absent (or not visible to the requester)."""
    code = "not_found"


class PermissionDeniedError(VaultError):
    """Requester can see the file but lacks the required level."""
    code = "permission_denied"


class IntegrityError(VaultError):
    """Digest of decrypted output does not match the stored digest."""
    code = "integrity_error"


class EncryptionError(VaultError):
    code = "encryption_error"


class DecryptionError(VaultError):
    code = "decryption_error"


class ConflictError(VaultError):
    code = "conflict"


class StorageIOError(VaultError):
    """Blob read/write/delete failed at the storage layer."""
    code = "storage_io_error"
