"""Storage module: file records, access log and ciphertext blobs."""

from .models import EncryptedFile, AccessLogEntry, AccessAction
from .records import FileRecordStore, InMemoryStore, PersistentStore
from .blobs import BlobStore, FilesystemBlobStore, InMemoryBlobStore

__all__ = [
    "EncryptedFile",
    "AccessLogEntry",
    "AccessAction",
    "FileRecordStore",
    "InMemoryStore",
    "PersistentStore",
    "BlobStore",
    "FilesystemBlobStore",
    "InMemoryBlobStore",
]
