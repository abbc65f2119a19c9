"""Availability model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Time

from backend.core import config
from backend.core.timezone_utils import utc_now
from backend.database import Base
from backend.models.user import generate_id


class AvailabilityRule(Base):
    """Recurring weekly open hours, in the teacher's wall-clock time.

    ``day_of_week`` counts from Sunday (0) to Saturday (6).
    """
    __tablename__ = "teacher_availability_rules"

    id = Column(String(36), primary_key=True, default=generate_id)
    teacher_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    timezone = Column(String, nullable=False, default=config.DEFAULT_TEACHER_TIMEZONE)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class UnavailableException(Base):
    """One-off blackout window stored as absolute instants."""
    __tablename__ = "teacher_unavailable_dates"

    id = Column(String(36), primary_key=True, default=generate_id)
    teacher_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    start_date_time = Column(DateTime(timezone=True), nullable=False)
    end_date_time = Column(DateTime(timezone=True), nullable=False)
    reason = Column(String)
    created_at = Column(DateTime(timezone=True), default=utc_now)
