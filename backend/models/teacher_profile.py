"""Teacher directory entries."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Text

from backend.core.timezone_utils import utc_now
from backend.database import Base
from backend.models.user import generate_id


class TeacherProfile(Base):
    """Public teacher metadata; ``subjects`` lists the test categories taught."""
    __tablename__ = "teacher_profiles"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False, index=True)
    headline = Column(String)
    bio = Column(Text)
    subjects = Column(JSON, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def teaches(self, test_category: str) -> bool:
        return test_category in (self.subjects or [])
