"""
Ciphertext blob storage.

One blob per EncryptedFile, addressed by a random opaque locator under the
"encrypted" namespace. Writes land in a temp file first and are swapped in
with an atomic rename, so a blob either exists completely or not at all.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Tuple, TypeVar
import io
import os
import re
import tempfile
import threading
import uuid

from filevault.errors import StorageIOError

T = TypeVar("T")

_LOCATOR_RE = re.compile(r"^[0-9a-f]{32}\.bin$")


def _new_locator() -> str:
    return f"{uuid.uuid4().hex}.bin"


def _check_locator(locator: str) -> str:
    if not isinstance(locator, str) or not _LOCATOR_RE.match(locator):
        raise StorageIOError("invalid storage locator")
    return locator


class BlobStore(ABC):
    @abstractmethod
    def put_from(self, fill: Callable[[BinaryIO], T]) -> Tuple[str, T]:
        """Create a blob by letting `fill` write into it; returns (locator, fill result)."""
    @abstractmethod
    def open(self, locator: str) -> BinaryIO: ...
    @abstractmethod
    def delete(self, locator: str) -> bool: ...
    @abstractmethod
    def exists(self, locator: str) -> bool: ...

    def put(self, data: bytes) -> str:
        locator, _ = self.put_from(lambda fh: fh.write(data))
        return locator

    def read(self, locator: str) -> bytes:
        with self.open(locator) as fh:
            return fh.read()


class FilesystemBlobStore(BlobStore):
    def __init__(self, root: Path, namespace: str = "encrypted") -> None:
        self.dir = Path(root) / namespace
        self.dir.mkdir(parents=True, exist_ok=True)

    def _path(self, locator: str) -> Path:
        return self.dir / _check_locator(locator)

    def put_from(self, fill: Callable[[BinaryIO], T]) -> Tuple[str, T]:
        locator = _new_locator()
        try:
            fd, tmp = tempfile.mkstemp(prefix="blob.", suffix=".tmp", dir=str(self.dir))
        except OSError as exc:
            raise StorageIOError(f"could not create blob: {exc}") from exc
        try:
            with os.fdopen(fd, "wb") as fh:
                result = fill(fh)
                fh.flush()
                os.fsync(fh.fileno())
            Path(tmp).replace(self._path(locator))
        except OSError as exc:
            raise StorageIOError(f"could not write blob: {exc}") from exc
        finally:
            Path(tmp).unlink(missing_ok=True)
        return locator, result

    def open(self, locator: str) -> BinaryIO:
        try:
            return self._path(locator).open("rb")
        except OSError as exc:
            raise StorageIOError(f"could not read blob {locator}: {exc.strerror or exc}") from exc

    def delete(self, locator: str) -> bool:
        path = self._path(locator)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageIOError(f"could not delete blob {locator}: {exc}") from exc
        return True

    def exists(self, locator: str) -> bool:
        return self._path(locator).exists()


class InMemoryBlobStore(BlobStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._blobs: Dict[str, bytes] = {}

    def put_from(self, fill: Callable[[BinaryIO], T]) -> Tuple[str, T]:
        buf = io.BytesIO()
        result = fill(buf)
        locator = _new_locator()
        with self._lock:
            self._blobs[locator] = buf.getvalue()
        return locator, result

    def open(self, locator: str) -> BinaryIO:
        _check_locator(locator)
        with self._lock:
            data = self._blobs.get(locator)
        if data is None:
            raise StorageIOError(f"could not read blob {locator}: missing")
        return io.BytesIO(data)

    def delete(self, locator: str) -> bool:
        _check_locator(locator)
        with self._lock:
            return self._blobs.pop(locator, None) is not None

    def exists(self, locator: str) -> bool:
        with self._lock:
            return locator in self._blobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)
