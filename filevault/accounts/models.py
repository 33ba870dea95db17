from dataclasses import dataclass
from typing import Optional
import uuid

from filevault.storage.models import UserId, now_iso


@dataclass(frozen=True)
class User:
    # identity is issued by the authentication layer; this is only a directory entry
    user_id: UserId
    username: str   # canonical (e.g., lowercased)
    created_at: str   # ISO8601 UTC

    # constructor
    @staticmethod
    def new(username: str, user_id: Optional[UserId] = None) -> "User":
        return User(
            user_id=user_id if user_id is not None else uuid.uuid4().hex,
            username=username.strip().lower(),
            created_at=now_iso(),
        )

    def public_dict(self) -> dict:
        return {"user_id": self.user_id, "username": self.username}
