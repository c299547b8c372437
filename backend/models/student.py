"""Student model definitions."""

import uuid

from sqlalchemy import Column, Numeric, String
from backend.database import Base


class Student(Base):
    """Represents an enrolled student and the parent contact used for linking."""
    __tablename__ = "students"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    grade = Column(String)
    roll_number = Column(String, index=True)
    parent_email = Column(String, index=True)
    fees_due = Column(Numeric(10, 2), default=0)
