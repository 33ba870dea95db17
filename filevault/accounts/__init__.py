"""User directory: which identities exist, as seen by the sharing ledger."""

from .models import User
from .storage import IStorage, InMemoryStorage, JSONStorage
from .manager import AccountManager

__all__ = ["User", "IStorage", "InMemoryStorage", "JSONStorage", "AccountManager"]
