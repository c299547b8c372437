"""Account model definitions."""

import enum

from sqlalchemy import Column, Index, String
from backend.database import Base


class AccountRole(str, enum.Enum):
    """Roles an account can declare at signup."""

    ADMIN = "admin"
    TEACHER = "teacher"
    PARENT = "parent"

    @classmethod
    def parse(cls, value: str) -> "AccountRole":
        return cls(value.strip().lower())


class Account(Base):
    """Represents an authenticated account and the record it is linked to."""
    __tablename__ = "accounts"
    __table_args__ = (
        Index("uq_accounts_linked_record_id", "linked_record_id", unique=True),
        Index("idx_accounts_email", "email"),
    )

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False)
    display_name = Column(String)
    role = Column(String, nullable=False)  # admin/teacher/parent
    linked_record_id = Column(String, nullable=True)
