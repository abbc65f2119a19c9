"""User model definitions."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, String

from backend.core.timezone_utils import utc_now
from backend.database import Base

ROLE_STUDENT = 'student'
ROLE_TEACHER = 'teacher'


def generate_id() -> str:
    return str(uuid4())


class User(Base):
    """Represents an application user, as supplied by the identity provider."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, default='')
    role = Column(String, nullable=False)  # student/teacher
    created_at = Column(DateTime(timezone=True), default=utc_now)
