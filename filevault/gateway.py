"""
Access Gateway

The single entry point for callers: upload, download, view metadata,
delete, share, revoke and the listing calls. Every operation checks the
requester's effective permission level first, then delegates to the
cipher engine, the stores and the ledger, and finally emits events on the
notification bus.

Authorization policy: if the requester has no access at all to a file (or
the file does not exist) the answer is NotFoundError, so file existence is
not leaked. A requester who can see the file but lacks the required level,
or who is not the owner for owner-only operations, gets
PermissionDeniedError.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Iterable, Iterator, List, Optional, Tuple, Union
import io
import logging
import tempfile
import threading

from filevault.crypto.cipher import decrypt_stream, encrypt_stream
from filevault.errors import DecryptionError, IntegrityError, NotFoundError, PermissionDeniedError, StorageIOError
from filevault.notifications.bus import NotificationBus
from filevault.notifications.events import EventType
from filevault.sharing.ledger import ShareLedger
from filevault.sharing.models import PermissionLevel, ShareGrant, SharedFileView
from filevault.storage.blobs import BlobStore
from filevault.storage.models import AccessAction, AccessLogEntry, EncryptedFile, UserId
from filevault.storage.records import FileRecordStore

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


# ============================================================================
# Result types
# ============================================================================

@dataclass(frozen=True)
class DownloadedFile:
    file: EncryptedFile
    content: bytes

    @property
    def filename(self) -> str:
        return self.file.original_name

    @property
    def mime_type(self) -> str:
        return self.file.mime_type

    def __repr__(self) -> str:
        return f"DownloadedFile(file={self.file.id!r}, content=<{len(self.content)} bytes>)"


@dataclass(frozen=True)
class FileDetails:
    """Metadata view returned by view_metadata; carries no plaintext."""

    file: EncryptedFile
    permission: PermissionLevel
    access_log: List[AccessLogEntry]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file.public_dict(),
            "permission": self.permission.value,
            "access_log": [e.to_dict() for e in self.access_log],
        }


@dataclass(frozen=True)
class UserStats:
    total_files: int
    total_size_bytes: int
    stored_size_bytes: int
    shared_with_me: int
    shared_by_me: int


# ============================================================================
# Helpers
# ============================================================================

class KeyedLock:
    """One mutex per key, created on demand and dropped when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, Tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                _, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class _LimitedReader:
    """Wraps a binary reader and refuses to read past `limit` bytes."""

    def __init__(self, reader: BinaryIO, limit: int):
        self._reader = reader
        self._limit = limit
        self._seen = 0

    def read(self, size: int = -1) -> bytes:
        chunk = self._reader.read(size)
        self._seen += len(chunk)
        if self._seen > self._limit:
            raise ValueError(f"File too large (limit is {self._limit} bytes)")
        return chunk


def _key_material(record: EncryptedFile) -> Tuple[bytes, bytes]:
    try:
        return bytes.fromhex(record.cipher_key), bytes.fromhex(record.cipher_iv)
    except (TypeError, ValueError):
        raise DecryptionError(f"stored key material of file {record.id} is malformed") from None


# ============================================================================
# Gateway
# ============================================================================

class AccessGateway:
    def __init__(
        self,
        records: FileRecordStore,
        blobs: BlobStore,
        ledger: ShareLedger,
        bus: NotificationBus,
        *,
        max_upload_size: Optional[int] = None,
        access_log_limit: int = 5,
        compensation_attempts: int = 3,
        temp_dir: Optional[str] = None,
    ):
        self.records = records
        self.blobs = blobs
        self.ledger = ledger
        self.bus = bus
        self.max_upload_size = max_upload_size
        self.access_log_limit = access_log_limit
        self.compensation_attempts = max(1, compensation_attempts)
        self.temp_dir = temp_dir
        self._file_locks = KeyedLock()

    # -- authorization -------------------------------------------------------

    def _authorize(self, requester_id: UserId, file_id: str, required: PermissionLevel) -> Tuple[EncryptedFile, PermissionLevel]:
        level = self.ledger.effective_level(file_id, requester_id)
        if level is None:
            raise NotFoundError(f"file {file_id} not found")
        record = self.records.get(file_id)
        if not level.allows(required):
            raise PermissionDeniedError(f"{required.value} permission required")
        return record, level

    def _authorize_owner(self, requester_id: UserId, file_id: str) -> EncryptedFile:
        record, _ = self._authorize(requester_id, file_id, PermissionLevel.FULL)
        if record.owner_id != requester_id:
            raise PermissionDeniedError("only the owner can do this")
        return record

    def _log(self, file_id: str, user_id: UserId, action: AccessAction, source_address: str) -> None:
        self.records.append_access(AccessLogEntry.new(file_id, user_id, action, source_address))

    # -- upload --------------------------------------------------------------

    def upload(
        self,
        owner_id: UserId,
        name: str,
        mime_type: Optional[str],
        data: Union[bytes, BinaryIO],
        source_address: str = "unknown",
    ) -> EncryptedFile:
        """
        Encrypt `data`, store the ciphertext and create its record.

        The blob is written first; if the record cannot be created the blob
        is removed again, so a failed upload leaves nothing behind.
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("file name cannot be empty")

        if isinstance(data, (bytes, bytearray, memoryview)):
            if self.max_upload_size is not None and len(data) > self.max_upload_size:
                raise ValueError(f"File too large (limit is {self.max_upload_size} bytes)")
            reader: Any = io.BytesIO(bytes(data))
        elif self.max_upload_size is not None:
            reader = _LimitedReader(data, self.max_upload_size)
        else:
            reader = data

        locator, params = self.blobs.put_from(lambda fh: encrypt_stream(reader, fh))
        record = EncryptedFile.new(
            owner_id,
            name,
            mime_type or DEFAULT_MIME_TYPE,
            plaintext_size=params.plaintext_size,
            stored_size=params.ciphertext_size,
            integrity_digest=params.digest,
            cipher_algorithm=params.algorithm,
            cipher_key=params.key.hex(),
            cipher_iv=params.iv.hex(),
            storage_locator=locator,
            file_id=self.records.new_id(),
        )
        try:
            self.records.create(record)
        except Exception:
            logger.warning("record create failed for upload %r, removing blob %s", name, locator)
            self._discard_blob(locator)
            raise

        self._log(record.id, owner_id, AccessAction.UPLOAD, source_address)
        logger.info("user %r uploaded %s (%d bytes)", owner_id, record.id, record.plaintext_size)
        self.bus.publish(owner_id, EventType.FILE_UPLOADED, {"file": record.public_dict()})
        return record

    def _discard_blob(self, locator: str) -> None:
        last_error = None
        for attempt in range(1, self.compensation_attempts + 1):
            try:
                self.blobs.delete(locator)
                return
            except StorageIOError as exc:
                last_error = exc
                logger.warning("attempt %d/%d to remove blob %s failed: %s",
                               attempt, self.compensation_attempts, locator, exc)
        logger.error("orphaned ciphertext blob %s could not be removed; delete it manually", locator)
        raise StorageIOError(f"could not remove orphaned blob {locator}") from last_error

    # -- download ------------------------------------------------------------

    @contextmanager
    def open_download(self, requester_id: UserId, file_id: str, source_address: str = "unknown") -> Iterator[Tuple[EncryptedFile, BinaryIO]]:
        """
        Decrypt a file into a temporary file and yield it once verified.

        The temporary file is removed when the block exits, including when the
        consumer stops reading early.
        """
        record, _ = self._authorize(requester_id, file_id, PermissionLevel.DOWNLOAD)
        key, iv = _key_material(record)
        tmp = tempfile.TemporaryFile(prefix="filevault.", dir=self.temp_dir)
        try:
            try:
                with self.blobs.open(record.storage_locator) as src:
                    decrypt_stream(
                        src,
                        tmp,
                        key,
                        iv,
                        record.integrity_digest,
                    )
            except IntegrityError:
                logger.error("integrity check failed for file %s", record.id)
                raise
            tmp.seek(0)
            self._log(record.id, requester_id, AccessAction.DOWNLOAD, source_address)
            self.records.touch_accessed(record.id)
            yield record, tmp
        finally:
            tmp.close()

    def download(self, requester_id: UserId, file_id: str, source_address: str = "unknown") -> DownloadedFile:
        with self.open_download(requester_id, file_id, source_address) as (record, fh):
            return DownloadedFile(file=record, content=fh.read())

    # -- metadata ------------------------------------------------------------

    def view_metadata(self, requester_id: UserId, file_id: str, source_address: str = "unknown") -> FileDetails:
        _, level = self._authorize(requester_id, file_id, PermissionLevel.VIEW)
        self._log(file_id, requester_id, AccessAction.VIEW, source_address)
        self.records.touch_accessed(file_id)
        return FileDetails(
            file=self.records.get(file_id),
            permission=level,
            access_log=self.records.recent_access(file_id, self.access_log_limit),
        )

    # -- delete --------------------------------------------------------------

    def delete(self, requester_id: UserId, file_id: str, source_address: str = "unknown") -> bool:
        with self._file_locks.hold(file_id):
            record = self._authorize_owner(requester_id, file_id)
            self._log(file_id, requester_id, AccessAction.DELETE, source_address)
            removed = self.ledger.cascade_delete_for_file(file_id)
            try:
                deleted = self.records.delete(file_id)
            except Exception:
                self.ledger.restore(removed)
                raise
            self._remove_blob(record)

        logger.info("user %r deleted %s", requester_id, file_id)
        payload = {"file_id": file_id}
        self.bus.publish(record.owner_id, EventType.FILE_DELETED, payload)
        for grantee in {g.grantee_user_id for g in removed}:
            self.bus.publish(grantee, EventType.FILE_DELETED, payload)
        return deleted

    def _remove_blob(self, record: EncryptedFile) -> None:
        # the record is already gone, so a leftover blob is unreachable ciphertext
        try:
            if not self.blobs.delete(record.storage_locator):
                logger.warning("blob %s of file %s was already gone", record.storage_locator, record.id)
        except StorageIOError as exc:
            logger.error("orphaned ciphertext blob %s could not be removed: %s", record.storage_locator, exc)

    # -- sharing -------------------------------------------------------------

    def share(
        self,
        owner_id: UserId,
        file_id: str,
        grantee_ids: Iterable[UserId],
        level: Union[str, PermissionLevel] = PermissionLevel.VIEW,
        note: Optional[str] = None,
    ) -> List[ShareGrant]:
        level = PermissionLevel.parse(level)
        grantee_ids = list(grantee_ids)
        with self._file_locks.hold(file_id):
            record = self._authorize_owner(owner_id, file_id)
            grants = self.ledger.grant(file_id, owner_id, grantee_ids, level, note)

        grantor = self.ledger.users.get_user(owner_id)
        shared_by = grantor.public_dict() if grantor else {"user_id": owner_id}
        for grant in grants:
            logger.info("user %r shared %s with %r (%s)", owner_id, file_id, grant.grantee_user_id, level.value)
            self.bus.publish(grant.grantee_user_id, EventType.FILE_SHARED_WITH_YOU, {
                "share": grant.to_dict(),
                "file": record.public_dict(),
                "shared_by": shared_by,
            })
        return grants

    def revoke(self, requester_id: UserId, grant_id: str) -> bool:
        grant = self.ledger.get(grant_id)
        if requester_id not in (grant.grantor_user_id, grant.grantee_user_id):
            raise NotFoundError(f"share {grant_id} not found")
        if requester_id != grant.grantor_user_id:
            raise PermissionDeniedError("only the owner can revoke a share")

        with self._file_locks.hold(grant.file_id):
            revoked = self.ledger.revoke(grant_id)
        if revoked:
            logger.info("user %r revoked share %s of %s", requester_id, grant_id, grant.file_id)
            self.bus.publish(grant.grantee_user_id, EventType.SHARE_REVOKED, {
                "share_id": grant_id,
                "file_id": grant.file_id,
            })
        return revoked

    def mark_viewed(self, requester_id: UserId, grant_id: str) -> bool:
        grant = self.ledger.get(grant_id)
        if grant.grantee_user_id != requester_id:
            raise NotFoundError(f"share {grant_id} not found")
        with self._file_locks.hold(grant.file_id):
            return self.ledger.mark_viewed(grant_id)

    # -- listings ------------------------------------------------------------

    def list_owned(self, user_id: UserId) -> List[EncryptedFile]:
        return self.records.list_by_owner(user_id)

    def list_shared_with_me(self, user_id: UserId) -> List[SharedFileView]:
        return self.ledger.list_granted_to_me(user_id)

    def list_shared_by_me(self, user_id: UserId) -> List[SharedFileView]:
        return self.ledger.list_granted_by_me(user_id)

    def stats(self, user_id: UserId) -> UserStats:
        owned = self.list_owned(user_id)
        return UserStats(
            total_files=len(owned),
            total_size_bytes=sum(f.plaintext_size for f in owned),
            stored_size_bytes=sum(f.stored_size for f in owned),
            shared_with_me=len(self.list_shared_with_me(user_id)),
            shared_by_me=len(self.list_shared_by_me(user_id)),
        )
