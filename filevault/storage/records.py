from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional
import logging
import threading

from filevault.errors import ConflictError, NotFoundError
from .jsonfile import load_json, save_json
from .models import AccessLogEntry, EncryptedFile, UserId, new_id, now_iso

logger = logging.getLogger(__name__)


class FileRecordStore(ABC):
    """Persistence contract for file metadata and the per-file access log."""

    @abstractmethod
    def create(self, record: EncryptedFile) -> EncryptedFile: ...
    @abstractmethod
    def get(self, file_id: str) -> EncryptedFile: ...
    @abstractmethod
    def list_by_owner(self, user_id: UserId) -> List[EncryptedFile]: ...
    @abstractmethod
    def touch_accessed(self, file_id: str) -> None: ...
    @abstractmethod
    def delete(self, file_id: str) -> bool: ...
    @abstractmethod
    def append_access(self, entry: AccessLogEntry) -> AccessLogEntry: ...
    @abstractmethod
    def recent_access(self, file_id: str, limit: int = 5) -> List[AccessLogEntry]: ...

    def new_id(self) -> str:
        return new_id()

    def exists(self, file_id: str) -> bool:
        try:
            self.get(file_id)
        except NotFoundError:
            return False
        return True


class InMemoryStore(FileRecordStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._files: Dict[str, EncryptedFile] = {}
        self._log: List[AccessLogEntry] = []

    def _changed(self) -> None:
        """Hook called after every mutation while the lock is held."""

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        # a failed _changed() puts the previous state back
        with self._lock:
            files, log = dict(self._files), list(self._log)
            try:
                yield
                self._changed()
            except Exception:
                self._files, self._log = files, log
                raise

    def create(self, record: EncryptedFile) -> EncryptedFile:
        with self._lock:
            if record.id in self._files:
                raise ConflictError(f"file id {record.id} already exists")
            with self._mutation():
                self._files[record.id] = record
        return record

    def get(self, file_id: str) -> EncryptedFile:
        with self._lock:
            record = self._files.get(file_id)
        if record is None:
            raise NotFoundError(f"file {file_id} not found")
        return record

    def list_by_owner(self, user_id: UserId) -> List[EncryptedFile]:
        with self._lock:
            owned = [r for r in self._files.values() if r.owner_id == user_id]
        owned.reverse()
        return owned

    def touch_accessed(self, file_id: str) -> None:
        with self._lock:
            record = self._files.get(file_id)
            if record is None:
                return
            with self._mutation():
                self._files[file_id] = record.touched(now_iso())

    def delete(self, file_id: str) -> bool:
        with self._lock:
            if file_id not in self._files:
                return False
            with self._mutation():
                del self._files[file_id]
                self._log = [e for e in self._log if e.file_id != file_id]
        return True

    def append_access(self, entry: AccessLogEntry) -> AccessLogEntry:
        with self._lock:
            if entry.file_id not in self._files:
                raise NotFoundError(f"file {entry.file_id} not found")
            with self._mutation():
                self._log.append(entry)
        return entry

    def recent_access(self, file_id: str, limit: int = 5) -> List[AccessLogEntry]:
        with self._lock:
            rows = [e for e in self._log if e.file_id == file_id]
        rows.reverse()
        return rows[:limit]


class PersistentStore(InMemoryStore):
    """
    File records and access log kept in a single JSON index.

    The whole index is rewritten atomically after each mutation, so a crash
    leaves either the previous or the new state on disk.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        data = load_json(self.path, {"files": [], "access_log": []})
        for item in data.get("files", []):
            record = EncryptedFile.from_dict(item)
            self._files[record.id] = record
        self._log = [AccessLogEntry.from_dict(item) for item in data.get("access_log", [])]
        logger.debug("loaded %d file records from %s", len(self._files), self.path)

    def _changed(self) -> None:
        save_json(self.path, {
            "files": [r.to_dict() for r in self._files.values()],
            "access_log": [e.to_dict() for e in self._log],
        })

    @classmethod
    def in_dir(cls, data_dir: Path, name: Optional[str] = None) -> "PersistentStore":
        return cls(Path(data_dir) / (name or "records.json"))
