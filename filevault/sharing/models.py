from __future__ import annotations

from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Any, Dict, Optional, Union

from filevault.accounts.models import User
from filevault.storage.models import EncryptedFile, UserId, new_id, now_iso


class PermissionLevel(str, Enum):
    """Ordered capability over one file: view < download < full."""

    VIEW = "view"
    DOWNLOAD = "download"
    FULL = "full"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def allows(self, required: "PermissionLevel") -> bool:
        return self.rank >= required.rank

    @classmethod
    def parse(cls, value: Union[str, "PermissionLevel"]) -> "PermissionLevel":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown permission level {value!r}, expected view, download or full") from None


_RANK = {PermissionLevel.VIEW: 1, PermissionLevel.DOWNLOAD: 2, PermissionLevel.FULL: 3}


@dataclass(frozen=True)
class ShareGrant:
    """
    Access from one user's file to another user.

    There is at most one grant per (file_id, grantee_user_id); re-sharing
    replaces level and note but keeps id, created_at and viewed.
    """

    id: str
    file_id: str
    grantor_user_id: UserId
    grantee_user_id: UserId
    permission_level: PermissionLevel
    note: Optional[str]
    created_at: str
    viewed: bool = False

    @staticmethod
    def new(
        file_id: str,
        grantor_user_id: UserId,
        grantee_user_id: UserId,
        permission_level: PermissionLevel,
        note: Optional[str] = None,
    ) -> "ShareGrant":
        return ShareGrant(
            id=new_id(),
            file_id=file_id,
            grantor_user_id=grantor_user_id,
            grantee_user_id=grantee_user_id,
            permission_level=PermissionLevel.parse(permission_level),
            note=note,
            created_at=now_iso(),
        )

    def with_level(self, level: PermissionLevel, note: Optional[str]) -> "ShareGrant":
        return replace(self, permission_level=level, note=note)

    def mark_viewed(self) -> "ShareGrant":
        return self if self.viewed else replace(self, viewed=True)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["permission_level"] = self.permission_level.value
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShareGrant":
        return cls(
            id=data["id"],
            file_id=data["file_id"],
            grantor_user_id=data["grantor_user_id"],
            grantee_user_id=data["grantee_user_id"],
            permission_level=PermissionLevel(data["permission_level"]),
            note=data.get("note"),
            created_at=data["created_at"],
            viewed=bool(data.get("viewed", False)),
        )


@dataclass(frozen=True)
class SharedFileView:
    """A grant joined with its file and the user on the other side of it."""

    grant: ShareGrant
    file: EncryptedFile
    counterpart: User

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grant": self.grant.to_dict(),
            "file": self.file.public_dict(),
            "user": self.counterpart.public_dict(),
        }
