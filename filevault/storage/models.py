from __future__ import annotations

from dataclasses import dataclass, asdict, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
import uuid

UserId = Union[int, str]


def now_iso() -> str:
    """Consistent ISO-8601 timestamp (UTC, microsecond precision)."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def new_id() -> str:
    return uuid.uuid4().hex


class AccessAction(str, Enum):
    UPLOAD = "upload"
    VIEW = "view"
    DOWNLOAD = "download"
    DELETE = "delete"


@dataclass(frozen=True)
class EncryptedFile:
    """
    Metadata for one encrypted file.

    `storage_locator` is the opaque blob name holding the ciphertext, while
    `original_name` is what the user uploaded. Key material (`cipher_key`,
    `cipher_iv`, hex-encoded) is bound to this record for its whole life;
    re-encrypting means creating a new record.
    """

    id: str
    owner_id: UserId
    original_name: str
    mime_type: str
    plaintext_size: int
    stored_size: int
    integrity_digest: str
    cipher_algorithm: str
    cipher_key: str = field(repr=False)
    cipher_iv: str = field(repr=False)
    storage_locator: str
    created_at: str
    last_accessed_at: Optional[str] = None

    @staticmethod
    def new(
        owner_id: UserId,
        original_name: str,
        mime_type: str,
        *,
        plaintext_size: int,
        stored_size: int,
        integrity_digest: str,
        cipher_algorithm: str,
        cipher_key: str,
        cipher_iv: str,
        storage_locator: str,
        file_id: Optional[str] = None,
    ) -> "EncryptedFile":
        created = now_iso()
        return EncryptedFile(
            id=file_id or new_id(),
            owner_id=owner_id,
            original_name=original_name,
            mime_type=mime_type,
            plaintext_size=plaintext_size,
            stored_size=stored_size,
            integrity_digest=integrity_digest,
            cipher_algorithm=cipher_algorithm,
            cipher_key=cipher_key,
            cipher_iv=cipher_iv,
            storage_locator=storage_locator,
            created_at=created,
            last_accessed_at=created,
        )

    def touched(self, when: Optional[str] = None) -> "EncryptedFile":
        """Copy with a new last_accessed_at; the only allowed mutation."""
        return replace(self, last_accessed_at=when or now_iso())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def public_dict(self) -> Dict[str, Any]:
        """View safe to hand to other users and notification payloads."""
        d = asdict(self)
        for secret in ("cipher_key", "cipher_iv", "storage_locator"):
            d.pop(secret)
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedFile":
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            original_name=data["original_name"],
            mime_type=data["mime_type"],
            plaintext_size=data["plaintext_size"],
            stored_size=data["stored_size"],
            integrity_digest=data["integrity_digest"],
            cipher_algorithm=data["cipher_algorithm"],
            cipher_key=data["cipher_key"],
            cipher_iv=data["cipher_iv"],
            storage_locator=data["storage_locator"],
            created_at=data["created_at"],
            last_accessed_at=data.get("last_accessed_at"),
        )


@dataclass(frozen=True)
class AccessLogEntry:
    """One append-only audit row."""

    id: str
    file_id: str
    user_id: UserId
    action: AccessAction
    source_address: str
    timestamp: str

    @staticmethod
    def new(file_id: str, user_id: UserId, action: AccessAction, source_address: str = "unknown") -> "AccessLogEntry":
        return AccessLogEntry(
            id=new_id(),
            file_id=file_id,
            user_id=user_id,
            action=AccessAction(action),
            source_address=source_address or "unknown",
            timestamp=now_iso(),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["action"] = self.action.value
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccessLogEntry":
        return cls(
            id=data["id"],
            file_id=data["file_id"],
            user_id=data["user_id"],
            action=AccessAction(data["action"]),
            source_address=data.get("source_address", "unknown"),
            timestamp=data["timestamp"],
        )
