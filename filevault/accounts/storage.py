from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import asdict, fields
import threading

from filevault.storage.jsonfile import load_json, save_json
from .models import User, UserId

# Get valid field names from User dataclass
_USER_FIELDS = {f.name for f in fields(User)}

def _make_user(data: Dict[str, Any]) -> User:
    """Create a User from dict, filtering out unknown fields for backwards compatibility."""
    filtered = {k: v for k, v in data.items() if k in _USER_FIELDS}
    return User(**filtered)

class IStorage(ABC):
    @abstractmethod
    def get_user(self, user_id: UserId) -> Optional[User]: ...
    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...
    @abstractmethod
    def save_user(self, user: User) -> None: ...
    @abstractmethod
    def get_all_users(self) -> List[User]: ...

class InMemoryStorage(IStorage):
    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[UserId, User] = {}

    def _persist(self) -> None:
        pass

    def get_user(self, user_id: UserId) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            for u in self._users.values():
                if u.username == username:
                    return u
        return None

    def save_user(self, user: User) -> None:
        with self._lock:
            if user.user_id in self._users:
                raise ValueError("user id already exists")
            if any(u.username == user.username for u in self._users.values()):
                raise ValueError("username already exists")
            self._users[user.user_id] = user
            try:
                self._persist()
            except Exception:
                del self._users[user.user_id]
                raise

    def get_all_users(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

class JSONStorage(InMemoryStorage):
    def __init__(self, path: Path = Path("users.json")):
        super().__init__()
        self.path = Path(path)
        for u in load_json(self.path, {"users": []})["users"]:
            user = _make_user(u)
            self._users[user.user_id] = user

    def _persist(self) -> None:
        save_json(self.path, {"users": [asdict(u) for u in self._users.values()]})
