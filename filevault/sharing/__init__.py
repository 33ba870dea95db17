"""Sharing & permission ledger."""

from .models import PermissionLevel, ShareGrant, SharedFileView
from .storage import GrantStore, InMemoryGrantStore, JSONGrantStore
from .ledger import ShareLedger

__all__ = [
    "PermissionLevel",
    "ShareGrant",
    "SharedFileView",
    "GrantStore",
    "InMemoryGrantStore",
    "JSONGrantStore",
    "ShareLedger",
]
