import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from backend.database import Base  # noqa: E402
from backend.models.account import Account  # noqa: E402
from backend.models.student import Student  # noqa: E402
from backend.models.teacher import Teacher  # noqa: E402


@pytest.fixture
def record_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=[Account.__table__, Teacher.__table__, Student.__table__])

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=[Student.__table__, Teacher.__table__, Account.__table__])


@pytest.fixture
def add_account(record_db):
    def _add(account_id: str, email: str, role: str, linked_record_id: str | None = None) -> Account:
        account = Account(id=account_id, email=email, role=role, linked_record_id=linked_record_id)
        record_db.add(account)
        record_db.commit()
        record_db.refresh(account)
        return account

    return _add


@pytest.fixture
def add_teacher(record_db):
    def _add(teacher_id: str, email: str, name: str = 'Teacher') -> Teacher:
        teacher = Teacher(id=teacher_id, name=name, subject='Maths', email=email)
        record_db.add(teacher)
        record_db.commit()
        return teacher

    return _add


@pytest.fixture
def add_student(record_db):
    def _add(student_id: str, roll_number: str, parent_email: str, name: str = 'Student') -> Student:
        student = Student(
            id=student_id,
            name=name,
            grade='5',
            roll_number=roll_number,
            parent_email=parent_email,
        )
        record_db.add(student)
        record_db.commit()
        return student

    return _add
