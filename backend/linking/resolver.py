"""
Identity resolver: links an authenticated account to its Teacher or Student record.

Invariants:
- A record is held by at most one account. The store's compare-and-set write
  is the only thing that enforces this under concurrency; no lock is held
  between lookup and write.
- Teacher accounts link to Teacher records by email, Parent accounts to Student
  records by parent email or roll number. Admin accounts never link.
- Resolving an already linked account issues no store calls.

NO_MATCH, ALREADY_LINKED and CONFLICT are ordinary results. Storage failures
come back as STORE_ERROR and are never retried here; retry policy belongs to
the caller.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Union

from backend.linking.domain import AccountSnapshot, LinkResult, StudentRecord, TeacherRecord
from backend.linking.store import AmbiguousMatchError, RecordStore, RecordStoreError
from backend.models.account import AccountRole

logger = logging.getLogger(__name__)

Record = Union[TeacherRecord, StudentRecord]


def _validate_account(account: AccountSnapshot) -> None:
    if not account.id or not account.id.strip():
        raise ValueError("Account id is required.")
    if not account.email or not account.email.strip():
        raise ValueError("Account email is required.")
    if not isinstance(account.role, AccountRole):
        raise ValueError(f"Unknown account role: {account.role!r}")


class IdentityResolver:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def resolve_link(self, account: AccountSnapshot) -> LinkResult:
        """Find the account's record by email and claim it if nobody else holds it."""
        _validate_account(account)
        if account.is_linked:
            return LinkResult.already_linked(account.linked_record_id)

        lookup: Optional[Callable[[str], Optional[Record]]]
        if account.role is AccountRole.TEACHER:
            lookup = self._store.find_teacher_by_email
        elif account.role is AccountRole.PARENT:
            lookup = self._store.find_student_by_parent_email
        else:
            lookup = None

        if lookup is None:
            return LinkResult.no_match()
        return self._lookup_and_claim(account, lambda: lookup(account.email))

    def resolve_by_explicit_key(self, account: AccountSnapshot, key: str) -> LinkResult:
        """Claim the student whose roll number equals `key`. Parent accounts only."""
        _validate_account(account)
        if account.role is not AccountRole.PARENT:
            return LinkResult.no_match("role_not_permitted")
        if account.is_linked:
            return LinkResult.already_linked(account.linked_record_id)

        roll_number = (key or "").strip()
        if not roll_number:
            return LinkResult.no_match("empty_key")
        return self._lookup_and_claim(account, lambda: self._store.find_student_by_roll_number(roll_number))

    def _lookup_and_claim(self, account: AccountSnapshot, lookup: Callable[[], Optional[Record]]) -> LinkResult:
        try:
            record = lookup()
        except AmbiguousMatchError as exc:
            logger.warning("Account %s matched several records (%s); not linking", account.id, exc.lookup)
            return LinkResult.no_match("ambiguous_match")
        except RecordStoreError as exc:
            return LinkResult.store_error(str(exc))

        if record is None:
            return LinkResult.no_match()

        try:
            return self._claim(account, record.id)
        except RecordStoreError as exc:
            return LinkResult.store_error(str(exc))

    def _claim(self, account: AccountSnapshot, record_id: str) -> LinkResult:
        holder = self._store.find_account_by_linked_record_id(record_id)
        if holder is not None:
            if holder.id == account.id:
                return LinkResult.already_linked(record_id)
            logger.warning("Account %s tried to claim record %s held by another account", account.id, record_id)
            return LinkResult.conflict(record_id)

        if self._store.compare_and_set_account_link(account.id, None, record_id):
            logger.info("Linked account %s to record %s", account.id, record_id)
            return LinkResult.linked(record_id)

        # The conditional write lost; find out to whom.
        current = self._store.get_account(account.id)
        if current is not None and current.is_linked:
            return LinkResult.already_linked(current.linked_record_id)

        holder = self._store.find_account_by_linked_record_id(record_id)
        if holder is not None and holder.id != account.id:
            logger.warning("Account %s lost the claim on record %s", account.id, record_id)
            return LinkResult.conflict(record_id)

        return LinkResult.store_error("link_write_rejected")


__all__ = ["IdentityResolver"]
