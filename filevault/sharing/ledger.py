from __future__ import annotations

from typing import Iterable, List, Optional, Union
import logging

from filevault.accounts.manager import AccountManager
from filevault.errors import NotFoundError, PermissionDeniedError
from filevault.storage.models import UserId
from filevault.storage.records import FileRecordStore
from .models import PermissionLevel, ShareGrant, SharedFileView
from .storage import GrantStore

logger = logging.getLogger(__name__)


def _newest_first(grants: Iterable[ShareGrant]) -> List[ShareGrant]:
    # reversed() first so that equal timestamps keep newest-inserted on top
    return sorted(reversed(list(grants)), key=lambda g: g.created_at, reverse=True)


class ShareLedger:
    """
    Grants, queries and revokes access from one user's file to another user.

    Ownership is checked by the gateway before calling in; `grant` checks it
    again so the ledger can never record a grant from a non-owner.
    """

    def __init__(self, grants: GrantStore, records: FileRecordStore, users: AccountManager):
        self.grants = grants
        self.records = records
        self.users = users

    def grant(
        self,
        file_id: str,
        grantor_id: UserId,
        grantee_ids: Iterable[UserId],
        level: Union[str, PermissionLevel],
        note: Optional[str] = None,
    ) -> List[ShareGrant]:
        level = PermissionLevel.parse(level)
        record = self.records.get(file_id)
        if record.owner_id != grantor_id:
            raise PermissionDeniedError("only the owner can share a file")

        result = []
        for grantee_id in grantee_ids:
            if grantee_id == grantor_id:
                logger.warning("skipping share of %s with its own owner", file_id)
                continue
            if not self.users.exists(grantee_id):
                logger.warning("skipping share of %s with unknown user %r", file_id, grantee_id)
                continue

            grant = None
            existing = self.grants.find(file_id, grantee_id)
            if existing is not None:
                # applied to the current row so a concurrent mark_viewed is kept
                grant = self.grants.update(existing.id, lambda g: g.with_level(level, note))
            if grant is None:
                grant = self.grants.save(ShareGrant.new(file_id, grantor_id, grantee_id, level, note))
            result.append(grant)
        return result

    def get(self, grant_id: str) -> ShareGrant:
        grant = self.grants.get(grant_id)
        if grant is None:
            raise NotFoundError(f"share {grant_id} not found")
        return grant

    def revoke(self, grant_id: str) -> bool:
        return self.grants.remove(grant_id) is not None

    def mark_viewed(self, grant_id: str) -> bool:
        return self.grants.update(grant_id, ShareGrant.mark_viewed) is not None

    def cascade_delete_for_file(self, file_id: str) -> List[ShareGrant]:
        removed = self.grants.remove_for_file(file_id)
        if removed:
            logger.info("removed %d share(s) of deleted file %s", len(removed), file_id)
        return removed

    def restore(self, grants: Iterable[ShareGrant]) -> None:
        """Put back grants removed by a cascade whose file delete did not go through."""
        grants = list(grants)
        for grant in grants:
            self.grants.save(grant)
        if grants:
            logger.warning("restored %d share(s) of file %s after a failed delete", len(grants), grants[0].file_id)

    def grants_for_file(self, file_id: str) -> List[ShareGrant]:
        return _newest_first(g for g in self.grants.all() if g.file_id == file_id)

    def effective_level(self, file_id: str, user_id: UserId) -> Optional[PermissionLevel]:
        try:
            record = self.records.get(file_id)
        except NotFoundError:
            return None
        if record.owner_id == user_id:
            return PermissionLevel.FULL
        levels = [
            g.permission_level for g in self.grants.all()
            if g.file_id == file_id and g.grantee_user_id == user_id
        ]
        if not levels:
            return None
        return max(levels, key=lambda lvl: lvl.rank)

    def _join(self, grants: List[ShareGrant], counterpart_of) -> List[SharedFileView]:
        views = []
        for grant in _newest_first(grants):
            try:
                record = self.records.get(grant.file_id)
            except NotFoundError:
                continue
            user = self.users.get_user(counterpart_of(grant))
            if user is None:
                continue
            views.append(SharedFileView(grant=grant, file=record, counterpart=user))
        return views

    def list_granted_to_me(self, user_id: UserId) -> List[SharedFileView]:
        mine = [g for g in self.grants.all() if g.grantee_user_id == user_id]
        return self._join(mine, lambda g: g.grantor_user_id)

    def list_granted_by_me(self, user_id: UserId) -> List[SharedFileView]:
        mine = [g for g in self.grants.all() if g.grantor_user_id == user_id]
        return self._join(mine, lambda g: g.grantee_user_id)
