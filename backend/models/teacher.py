"""Teacher model definitions."""

import uuid

from sqlalchemy import Column, String
from backend.database import Base


class Teacher(Base):
    """Represents a teacher record managed by administrators."""
    __tablename__ = "teachers"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    subject = Column(String)
    email = Column(String, index=True)
