"""
Value types shared by the identity resolver and its record stores.

Stores hand back these snapshots instead of live ORM rows so the resolver never
keeps a session open across the lookup-then-write gap.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from backend.models.account import AccountRole


@dataclass(frozen=True)
class AccountSnapshot:
    id: str
    email: str
    # None when the stored role is outside AccountRole; such accounts never resolve.
    role: Optional[AccountRole]
    linked_record_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def is_linked(self) -> bool:
        return bool(self.linked_record_id)


@dataclass(frozen=True)
class TeacherRecord:
    id: str
    name: str
    email: Optional[str] = None
    subject: Optional[str] = None


@dataclass(frozen=True)
class StudentRecord:
    id: str
    name: str
    roll_number: Optional[str] = None
    parent_email: Optional[str] = None
    grade: Optional[str] = None
    fees_due: Decimal = Decimal("0")


class LinkStatus(str, enum.Enum):
    LINKED = "linked"
    ALREADY_LINKED = "already_linked"
    NO_MATCH = "no_match"
    CONFLICT = "conflict"
    STORE_ERROR = "store_error"


@dataclass(frozen=True)
class LinkResult:
    status: LinkStatus
    record_id: Optional[str] = None
    attempted_record_id: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def linked(cls, record_id: str) -> "LinkResult":
        return cls(status=LinkStatus.LINKED, record_id=record_id)

    @classmethod
    def already_linked(cls, record_id: str) -> "LinkResult":
        return cls(status=LinkStatus.ALREADY_LINKED, record_id=record_id)

    @classmethod
    def no_match(cls, detail: Optional[str] = None) -> "LinkResult":
        return cls(status=LinkStatus.NO_MATCH, detail=detail)

    @classmethod
    def conflict(cls, attempted_record_id: str) -> "LinkResult":
        return cls(status=LinkStatus.CONFLICT, attempted_record_id=attempted_record_id)

    @classmethod
    def store_error(cls, detail: str) -> "LinkResult":
        return cls(status=LinkStatus.STORE_ERROR, detail=detail)


def normalize_email(value: str) -> str:
    return value.strip().lower()


__all__ = [
    "AccountSnapshot",
    "TeacherRecord",
    "StudentRecord",
    "LinkStatus",
    "LinkResult",
    "normalize_email",
]
