"""Authoritative record of booking requests.

This module never computes availability; callers pass a guard that does.
"""

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from backend.core.exceptions import NotFoundError
from backend.core.slot_lock import slot_lock
from backend.core.timezone_utils import ensure_utc, utc_now
from backend.models.booking import CAPACITY_STATUSES, Booking
from backend.repositories.teacher_repository import lock_teacher_profile

logger = logging.getLogger(__name__)


def list_bookings(
    db: Session,
    teacher_id: str | None = None,
    student_id: str | None = None,
    status: str | None = None,
) -> list[Booking]:
    query = db.query(Booking)
    if teacher_id is not None:
        query = query.filter(Booking.teacher_id == teacher_id)
    if student_id is not None:
        query = query.filter(Booking.student_id == student_id)
    if status is not None:
        query = query.filter(Booking.status == status)
    return query.order_by(Booking.start_date_time.asc(), Booking.created_at.asc()).all()


def list_capacity_bookings_at(db: Session, teacher_ids: list[str], instant: datetime) -> list[Booking]:
    if not teacher_ids:
        return []

    return db.query(Booking).filter(
        Booking.teacher_id.in_(teacher_ids),
        Booking.start_date_time == ensure_utc(instant),
        Booking.status.in_(CAPACITY_STATUSES),
    ).all()


def get_booking(db: Session, booking_id: str, for_update: bool = False) -> Booking:
    query = db.query(Booking).filter(Booking.id == booking_id)
    if for_update:
        query = query.with_for_update()

    booking = query.first()
    if booking is None:
        raise NotFoundError('Booking not found.', details={'booking_id': booking_id})
    return booking


def insert_booking_guarded(db: Session, booking: Booking, guard: Callable[[Session], None]) -> Booking:
    """Insert ``booking`` only if ``guard`` does not raise.

    The guard, the insert and the commit run while holding the slot lock and
    the teacher row lock, so concurrent inserts for the same slot observe
    each other's committed rows.
    """
    instant = ensure_utc(booking.start_date_time)
    booking.start_date_time = instant

    with slot_lock(booking.teacher_id, instant):
        try:
            lock_teacher_profile(db, booking.teacher_id)
            guard(db)
            db.add(booking)
            db.commit()
        except Exception:
            db.rollback()
            raise

    db.refresh(booking)
    return booking


def update_status(db: Session, booking: Booking, new_status: str) -> Booking:
    """Stage a status change; the caller owns the commit."""
    logger.info('booking %s status %s -> %s', booking.id, booking.status, new_status)
    booking.status = new_status
    booking.updated_at = utc_now()
    db.flush()
    return booking
