"""Decides whether a teacher can take a booking at one absolute instant.

The ``evaluate_slot`` family is pure: given the same rules, exceptions,
bookings and instant it always returns the same answer. The ``*_live``
helpers read current rows through the repositories and hold no cache, so a
cancellation is visible to the next call.
"""

from datetime import datetime
from typing import Iterable

from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.exceptions import ValidationError
from backend.core.timezone_utils import ensure_utc, is_on_slot_grid, sunday_based_weekday, to_local
from backend.models.availability import AvailabilityRule, UnavailableException
from backend.models.booking import CAPACITY_STATUSES, Booking
from backend.repositories import availability_repository, booking_repository, teacher_repository


class SlotAvailability(BaseModel):
    teacher_id: str
    is_open_by_rules: bool
    is_blocked_by_exception: bool
    booking_count_at_slot: int
    computed_capacity: int
    spots_left: int
    is_available: bool


def require_slot_instant(instant: datetime, increment_minutes: int | None = None) -> datetime:
    """Return ``instant`` in UTC, or raise if it is not a bookable slot start.

    Capacity is counted per exact instant, so only instants on the slot grid
    may be evaluated or booked.
    """
    increment = increment_minutes or config.SLOT_INCREMENT_MINUTES
    if not is_on_slot_grid(instant, increment):
        raise ValidationError(
            f'Slots start on {increment}-minute boundaries with no seconds.',
            code='OFF_SLOT_GRID',
            details={'start_date_time': ensure_utc(instant).isoformat(), 'increment_minutes': increment},
        )
    return ensure_utc(instant)


def rule_covers(rule: AvailabilityRule, instant: datetime) -> bool:
    if not rule.enabled:
        return False

    local = to_local(instant, rule.timezone)
    if sunday_based_weekday(local) != rule.day_of_week:
        return False

    return rule.start_time <= local.time() < rule.end_time


def is_open_by_rules(rules: Iterable[AvailabilityRule], instant: datetime) -> bool:
    # Overlapping rules act as a union.
    return any(rule_covers(rule, instant) for rule in rules)


def is_blocked_by_exception(exceptions: Iterable[UnavailableException], instant: datetime) -> bool:
    instant = ensure_utc(instant)
    return any(
        ensure_utc(exception.start_date_time) <= instant < ensure_utc(exception.end_date_time)
        for exception in exceptions
    )


def count_bookings_at_slot(bookings: Iterable[Booking], teacher_id: str, instant: datetime) -> int:
    instant = ensure_utc(instant)
    return sum(
        1
        for booking in bookings
        if booking.teacher_id == teacher_id
        and booking.status in CAPACITY_STATUSES
        and ensure_utc(booking.start_date_time) == instant
    )


def evaluate_slot(
    teacher_id: str,
    rules: Iterable[AvailabilityRule],
    exceptions: Iterable[UnavailableException],
    bookings: Iterable[Booking],
    instant: datetime,
    capacity: int,
) -> SlotAvailability:
    open_by_rules = is_open_by_rules(rules, instant)
    blocked = is_blocked_by_exception(exceptions, instant)
    booking_count = count_bookings_at_slot(bookings, teacher_id, instant)
    spots_left = max(0, capacity - booking_count)

    return SlotAvailability(
        teacher_id=teacher_id,
        is_open_by_rules=open_by_rules,
        is_blocked_by_exception=blocked,
        booking_count_at_slot=booking_count,
        computed_capacity=capacity,
        spots_left=spots_left,
        is_available=open_by_rules and not blocked and spots_left > 0,
    )


def evaluate_teacher_live(
    db: Session,
    teacher_id: str,
    instant: datetime,
    capacity: int | None = None,
) -> SlotAvailability:
    return evaluate_teachers_live(db, [teacher_id], instant, capacity=capacity)[0]


def evaluate_teachers_live(
    db: Session,
    teacher_ids: list[str],
    instant: datetime,
    capacity: int | None = None,
) -> list[SlotAvailability]:
    capacity = config.SLOT_CAPACITY if capacity is None else capacity
    instant = require_slot_instant(instant)

    rules_by_teacher = availability_repository.list_rules_for_teachers(db, teacher_ids)
    exceptions_by_teacher = availability_repository.list_exceptions_covering(db, teacher_ids, instant)
    bookings = booking_repository.list_capacity_bookings_at(db, teacher_ids, instant)

    return [
        evaluate_slot(
            teacher_id,
            rules_by_teacher.get(teacher_id, []),
            exceptions_by_teacher.get(teacher_id, []),
            bookings,
            instant,
            capacity,
        )
        for teacher_id in teacher_ids
    ]


def evaluate_active_teachers(
    db: Session,
    instant: datetime,
    test_category: str | None = None,
    capacity: int | None = None,
) -> list[SlotAvailability]:
    """One row per active teacher; the category narrows the population only."""
    profiles = teacher_repository.list_active_teachers(db, test_category)
    teacher_ids = [profile.user_id for profile in profiles]
    return evaluate_teachers_live(db, teacher_ids, instant, capacity=capacity)
