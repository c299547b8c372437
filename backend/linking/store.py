"""
Record stores consumed by the identity resolver.

`SqlRecordStore` is the production store. `compare_and_set_account_link` is
the only write and the only primitive that carries atomicity: a single
conditional UPDATE backed by the unique index on `accounts.linked_record_id`.

`InMemoryRecordStore` mirrors the same contract for development and tests.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from threading import Lock
from typing import Dict, Optional, Protocol

from sqlalchemy import exists, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from backend.linking.domain import AccountSnapshot, StudentRecord, TeacherRecord, normalize_email
from backend.models.account import Account, AccountRole
from backend.models.student import Student
from backend.models.teacher import Teacher

logger = logging.getLogger(__name__)


class RecordStoreError(Exception):
    """Raised when the backing store cannot be read or written."""


class AmbiguousMatchError(Exception):
    """Raised when a lookup that must be unique matches more than one record."""

    def __init__(self, lookup: str, count: int) -> None:
        super().__init__(f"{lookup} matched {count} records")
        self.lookup = lookup
        self.count = count


class RecordStore(Protocol):
    def find_teacher_by_email(self, email: str) -> Optional[TeacherRecord]:
        ...

    def find_student_by_parent_email(self, email: str) -> Optional[StudentRecord]:
        ...

    def find_student_by_roll_number(self, roll_number: str) -> Optional[StudentRecord]:
        ...

    def find_account_by_linked_record_id(self, record_id: str) -> Optional[AccountSnapshot]:
        ...

    def get_account(self, account_id: str) -> Optional[AccountSnapshot]:
        ...

    def compare_and_set_account_link(
        self, account_id: str, expected_current_link: Optional[str], new_link: str
    ) -> bool:
        ...


def _require_unlinked_expectation(expected_current_link: Optional[str]) -> None:
    # Unlinked -> Linked is the only transition; there is no relink or unlink.
    if expected_current_link is not None:
        raise ValueError("Only links from an unlinked account are supported.")


def account_snapshot(account: Account) -> AccountSnapshot:
    return AccountSnapshot(
        id=account.id,
        email=account.email,
        role=AccountRole.parse(account.role),
        linked_record_id=account.linked_record_id or None,
        display_name=account.display_name,
    )


def _stored_account_snapshot(account: Account) -> AccountSnapshot:
    # Ownership checks only need id and link; a role outside the enum must not hide a holder.
    try:
        role = AccountRole.parse(account.role or "")
    except ValueError:
        role = None
    return AccountSnapshot(
        id=account.id,
        email=account.email,
        role=role,
        linked_record_id=account.linked_record_id or None,
        display_name=account.display_name,
    )


def _teacher_record(teacher: Teacher) -> TeacherRecord:
    return TeacherRecord(id=teacher.id, name=teacher.name, email=teacher.email, subject=teacher.subject)


def _student_record(student: Student) -> StudentRecord:
    return StudentRecord(
        id=student.id,
        name=student.name,
        roll_number=student.roll_number,
        parent_email=student.parent_email,
        grade=student.grade,
        fees_due=student.fees_due if student.fees_due is not None else Decimal("0"),
    )


class SqlRecordStore:
    def __init__(self, db: Session) -> None:
        self._db = db

    def _single(self, query, lookup: str):
        try:
            rows = query.limit(2).all()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception('Record lookup failed: %s', lookup)
            raise RecordStoreError(f'{lookup} lookup failed') from exc

        if len(rows) > 1:
            raise AmbiguousMatchError(lookup, len(rows))
        return rows[0] if rows else None

    def find_teacher_by_email(self, email: str) -> Optional[TeacherRecord]:
        query = self._db.query(Teacher).filter(func.lower(Teacher.email) == normalize_email(email))
        teacher = self._single(query, 'teacher_email')
        return _teacher_record(teacher) if teacher else None

    def find_student_by_parent_email(self, email: str) -> Optional[StudentRecord]:
        query = self._db.query(Student).filter(func.lower(Student.parent_email) == normalize_email(email))
        student = self._single(query, 'parent_email')
        return _student_record(student) if student else None

    def find_student_by_roll_number(self, roll_number: str) -> Optional[StudentRecord]:
        query = self._db.query(Student).filter(Student.roll_number == roll_number.strip())
        student = self._single(query, 'roll_number')
        return _student_record(student) if student else None

    def find_account_by_linked_record_id(self, record_id: str) -> Optional[AccountSnapshot]:
        # The unique index guarantees at most one row.
        query = self._db.query(Account).filter(Account.linked_record_id == record_id)
        account = self._single(query, 'linked_record_id')
        return _stored_account_snapshot(account) if account else None

    def get_account(self, account_id: str) -> Optional[AccountSnapshot]:
        # Bypass the identity map so a concurrent link is visible.
        self._db.expire_all()
        account = self._single(self._db.query(Account).filter(Account.id == account_id), 'account_id')
        return _stored_account_snapshot(account) if account else None

    def compare_and_set_account_link(
        self, account_id: str, expected_current_link: Optional[str], new_link: str
    ) -> bool:
        _require_unlinked_expectation(expected_current_link)

        other = aliased(Account)
        statement = (
            update(Account)
            .where(
                Account.id == account_id,
                or_(Account.linked_record_id.is_(None), Account.linked_record_id == ''),
                ~exists().where(other.linked_record_id == new_link),
            )
            .values(linked_record_id=new_link)
            .execution_options(synchronize_session=False)
        )

        try:
            result = self._db.execute(statement)
            self._db.commit()
        except IntegrityError:
            # A racing writer claimed the record between our check and the index write.
            self._db.rollback()
            logger.info('Link write for account %s lost the race for record %s', account_id, new_link)
            return False
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception('Link write failed for account %s', account_id)
            raise RecordStoreError('link write failed') from exc

        self._db.expire_all()
        return result.rowcount == 1


class InMemoryRecordStore:
    def __init__(self) -> None:
        self._lock = Lock()
        self._accounts: Dict[str, AccountSnapshot] = {}
        self._teachers: Dict[str, TeacherRecord] = {}
        self._students: Dict[str, StudentRecord] = {}
        self.writes = 0

    def add_account(self, account: AccountSnapshot) -> AccountSnapshot:
        with self._lock:
            self._accounts[account.id] = account
        return account

    def add_teacher(self, teacher: TeacherRecord) -> TeacherRecord:
        self._teachers[teacher.id] = teacher
        return teacher

    def add_student(self, student: StudentRecord) -> StudentRecord:
        self._students[student.id] = student
        return student

    @staticmethod
    def _single(matches: list, lookup: str):
        if len(matches) > 1:
            raise AmbiguousMatchError(lookup, len(matches))
        return matches[0] if matches else None

    def find_teacher_by_email(self, email: str) -> Optional[TeacherRecord]:
        wanted = normalize_email(email)
        matches = [t for t in self._teachers.values() if t.email and normalize_email(t.email) == wanted]
        return self._single(matches, 'teacher_email')

    def find_student_by_parent_email(self, email: str) -> Optional[StudentRecord]:
        wanted = normalize_email(email)
        matches = [
            s for s in self._students.values() if s.parent_email and normalize_email(s.parent_email) == wanted
        ]
        return self._single(matches, 'parent_email')

    def find_student_by_roll_number(self, roll_number: str) -> Optional[StudentRecord]:
        wanted = roll_number.strip()
        matches = [s for s in self._students.values() if s.roll_number == wanted]
        return self._single(matches, 'roll_number')

    def find_account_by_linked_record_id(self, record_id: str) -> Optional[AccountSnapshot]:
        with self._lock:
            for account in self._accounts.values():
                if account.linked_record_id == record_id:
                    return account
        return None

    def get_account(self, account_id: str) -> Optional[AccountSnapshot]:
        with self._lock:
            return self._accounts.get(account_id)

    def compare_and_set_account_link(
        self, account_id: str, expected_current_link: Optional[str], new_link: str
    ) -> bool:
        _require_unlinked_expectation(expected_current_link)

        with self._lock:
            account = self._accounts.get(account_id)
            if account is None or account.is_linked:
                return False
            if any(a.linked_record_id == new_link for a in self._accounts.values()):
                return False
            self._accounts[account_id] = replace(account, linked_record_id=new_link)
            self.writes += 1
            return True


__all__ = [
    "RecordStore",
    "RecordStoreError",
    "AmbiguousMatchError",
    "SqlRecordStore",
    "InMemoryRecordStore",
    "account_snapshot",
]
