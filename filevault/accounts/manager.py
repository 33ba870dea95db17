import logging
from typing import Optional, List, Iterable

from .models import User, UserId
from .storage import IStorage

logger = logging.getLogger(__name__)

class AccountManager:
    def __init__(self, storage: IStorage):
        self.storage = storage

    @staticmethod
    def _canon(username: str) -> str:
        return username.strip().lower()

    def register(self, username: str, user_id: Optional[UserId] = None) -> User:
        username_c = self._canon(username)
        if not username_c:
            raise ValueError("username cannot be empty")
        if self.storage.get_user_by_username(username_c):
            raise ValueError("Username already taken.")
        user = User.new(username_c, user_id=user_id)
        self.storage.save_user(user)
        logger.info("registered user %s (%s)", user.username, user.user_id)
        return user

    def get_user(self, user_id: UserId) -> Optional[User]:
        return self.storage.get_user(user_id)

    def exists(self, user_id: UserId) -> bool:
        return self.storage.get_user(user_id) is not None

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Get a user by their username."""
        return self.storage.get_user_by_username(self._canon(username))

    def get_all_users(self) -> List[User]:
        """Get all registered users."""
        return self.storage.get_all_users()

    def get_other_users(self, exclude_id: UserId) -> List[User]:
        """Get all users except the specified one."""
        return [u for u in self.get_all_users() if u.user_id != exclude_id]

    def resolve_usernames(self, usernames: Iterable[str]) -> List[User]:
        """Look up several usernames, silently skipping unknown ones."""
        result = []
        for username in usernames:
            user = self.get_user_by_username(username)
            if user:
                result.append(user)
        return result
