"""Conversation and tutoring session model definitions."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String

from backend.core.timezone_utils import utc_now
from backend.database import Base
from backend.models.user import generate_id


class SessionStatus(str, Enum):
    SCHEDULED = 'scheduled'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class Conversation(Base):
    """Chat thread opened when a booking is confirmed."""
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=generate_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), unique=True, index=True)
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    teacher_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class TutoringSession(Base):
    """Scheduled lesson spanning the booked slot."""
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=generate_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), unique=True, nullable=False, index=True)
    conversation_id = Column(String(36), ForeignKey("conversations.id"))
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    teacher_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    start_date_time = Column(DateTime(timezone=True), nullable=False)
    end_date_time = Column(DateTime(timezone=True), nullable=False)
    meeting_link = Column(String)
    status = Column(String, nullable=False, default=SessionStatus.SCHEDULED.value)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
