"""Booking and test selection model definitions."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from backend.core.timezone_utils import utc_now
from backend.database import Base
from backend.models.user import generate_id


class BookingStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'


# Statuses that occupy a spot at a slot.
CAPACITY_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


class ExamCategory(str, Enum):
    ITA_L2 = 'ITA_L2'
    TOLC = 'TOLC'
    CENTS = 'CENTS'
    CLA = 'CLA'


TEST_CATEGORY_DETAILS = {
    ExamCategory.ITA_L2: ('ITA L2', 'Italian as second language certification'),
    ExamCategory.TOLC: ('TOLC', 'Test OnLine CISIA, university admission'),
    ExamCategory.CENTS: ("CENT'S", 'Centro Linguistico certification'),
    ExamCategory.CLA: ('CLA', 'Centro Linguistico Ateneo'),
}

SUBTYPES_BY_CATEGORY = {
    ExamCategory.TOLC: ('I', 'E', 'F', 'SU', 'B', 'S'),
}


class StudentTestSelection(Base):
    """The test a student is preparing for; immutable once created."""
    __tablename__ = "student_test_selections"

    id = Column(String(36), primary_key=True, default=generate_id)
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    test_category = Column(String, nullable=False)
    test_subtype = Column(String)
    test_date_time = Column(DateTime(timezone=True), nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class Booking(Base):
    """A booking request; never deleted, only moved between statuses."""
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_id)
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    teacher_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    student_test_selection_id = Column(
        String(36),
        ForeignKey("student_test_selections.id"),
        nullable=False,
        unique=True,
    )
    start_date_time = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, default=BookingStatus.PENDING.value)
    receipt_path = Column(String)
    receipt_mime = Column(String)
    receipt_original_name = Column(String)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    selection = relationship(StudentTestSelection)
