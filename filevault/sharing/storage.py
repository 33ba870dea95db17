from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional
import threading

from filevault.storage.jsonfile import load_json, save_json
from filevault.storage.models import UserId
from .models import ShareGrant


class GrantStore(ABC):
    @abstractmethod
    def get(self, grant_id: str) -> Optional[ShareGrant]: ...
    @abstractmethod
    def find(self, file_id: str, grantee_id: UserId) -> Optional[ShareGrant]: ...
    @abstractmethod
    def save(self, grant: ShareGrant) -> ShareGrant: ...
    @abstractmethod
    def update(self, grant_id: str, change: Callable[[ShareGrant], ShareGrant]) -> Optional[ShareGrant]:
        """Apply `change` to the current row atomically; None if the grant is gone."""
    @abstractmethod
    def remove(self, grant_id: str) -> Optional[ShareGrant]: ...
    @abstractmethod
    def remove_for_file(self, file_id: str) -> List[ShareGrant]: ...
    @abstractmethod
    def all(self) -> List[ShareGrant]: ...


class InMemoryGrantStore(GrantStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._grants: Dict[str, ShareGrant] = {}

    def _persist(self) -> None:
        pass

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        with self._lock:
            snapshot = dict(self._grants)
            try:
                yield
                self._persist()
            except Exception:
                self._grants = snapshot
                raise

    def get(self, grant_id: str) -> Optional[ShareGrant]:
        with self._lock:
            return self._grants.get(grant_id)

    def find(self, file_id: str, grantee_id: UserId) -> Optional[ShareGrant]:
        with self._lock:
            for g in self._grants.values():
                if g.file_id == file_id and g.grantee_user_id == grantee_id:
                    return g
        return None

    def save(self, grant: ShareGrant) -> ShareGrant:
        """Insert or replace by id."""
        with self._mutation():
            self._grants[grant.id] = grant
        return grant

    def update(self, grant_id: str, change: Callable[[ShareGrant], ShareGrant]) -> Optional[ShareGrant]:
        with self._lock:
            current = self._grants.get(grant_id)
            if current is None:
                return None
            updated = change(current)
            if updated == current:
                return current
            with self._mutation():
                self._grants[grant_id] = updated
        return updated

    def remove(self, grant_id: str) -> Optional[ShareGrant]:
        with self._lock:
            if grant_id not in self._grants:
                return None
            with self._mutation():
                grant = self._grants.pop(grant_id)
        return grant

    def remove_for_file(self, file_id: str) -> List[ShareGrant]:
        with self._lock:
            removed = [g for g in self._grants.values() if g.file_id == file_id]
            if removed:
                with self._mutation():
                    for g in removed:
                        del self._grants[g.id]
        return removed

    def all(self) -> List[ShareGrant]:
        with self._lock:
            return list(self._grants.values())


class JSONGrantStore(InMemoryGrantStore):
    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        for item in load_json(self.path, {"grants": []})["grants"]:
            grant = ShareGrant.from_dict(item)
            self._grants[grant.id] = grant

    def _persist(self) -> None:
        save_json(self.path, {"grants": [g.to_dict() for g in self._grants.values()]})
