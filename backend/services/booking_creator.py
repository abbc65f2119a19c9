"""The only path through which a booking request is inserted."""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.exceptions import CapacityFull, ValidationError
from backend.core.timezone_utils import ensure_utc, utc_now
from backend.models.booking import (
    SUBTYPES_BY_CATEGORY,
    Booking,
    BookingStatus,
    ExamCategory,
    StudentTestSelection,
)
from backend.models.user import ROLE_STUDENT, User
from backend.repositories import booking_repository, teacher_repository
from backend.services import availability_evaluator
from backend.services.notifications import (
    REQUEST_RECEIVED,
    REQUEST_SUBMITTED,
    BookingEvent,
    NotificationDispatcher,
)

logger = logging.getLogger(__name__)

ACCEPTED_RECEIPT_MIME_TYPES = {'application/pdf', 'image/png', 'image/jpeg'}


def validate_test_selection(test_category: str, test_subtype: str | None) -> tuple[str, str | None]:
    try:
        category = ExamCategory(test_category)
    except ValueError as exc:
        raise ValidationError('Invalid test category.', details={'test_category': test_category}) from exc

    subtype = (test_subtype or '').strip() or None
    allowed_subtypes = SUBTYPES_BY_CATEGORY.get(category)

    if allowed_subtypes is None:
        if subtype is not None:
            raise ValidationError(f'{category.value} does not take a subtype.')
        return category.value, None

    if subtype is None:
        raise ValidationError(f'A subtype is required for {category.value}.')
    if subtype not in allowed_subtypes:
        raise ValidationError(
            f'Invalid {category.value} subtype.',
            details={'allowed_subtypes': list(allowed_subtypes)},
        )
    return category.value, subtype


def validate_receipt(receipt_path: str | None, receipt_mime: str | None) -> None:
    if not receipt_path or not receipt_path.strip():
        raise ValidationError('A payment receipt is required.')
    if receipt_mime not in ACCEPTED_RECEIPT_MIME_TYPES:
        raise ValidationError('Only PDF, PNG, or JPEG receipts are allowed.')


def create_booking_request(
    db: Session,
    student: User,
    teacher_id: str,
    test_category: str,
    test_subtype: str | None,
    target_instant: datetime,
    receipt_path: str,
    receipt_mime: str,
    receipt_original_name: str | None = None,
    capacity: int | None = None,
    notifier: NotificationDispatcher | None = None,
    now: datetime | None = None,
) -> Booking:
    """Validate, re-check capacity and insert a pending booking atomically.

    Raises ``ValidationError``, ``NotFoundError`` or ``CapacityFull``; on any
    of them no row is written.
    """
    capacity = config.SLOT_CAPACITY if capacity is None else capacity
    instant = availability_evaluator.require_slot_instant(target_instant)

    if student.role != ROLE_STUDENT:
        raise ValidationError('Only students can request bookings.')
    if student.id == teacher_id:
        raise ValidationError('Teachers cannot book themselves.')

    category, subtype = validate_test_selection(test_category, test_subtype)
    validate_receipt(receipt_path, receipt_mime)

    if instant <= ensure_utc(now or utc_now()):
        raise ValidationError('Bookings must be requested for a future time.')

    teacher_repository.get_active_teacher(db, teacher_id)

    def check_slot(session: Session) -> None:
        slot = availability_evaluator.evaluate_teacher_live(session, teacher_id, instant, capacity=capacity)
        if not slot.is_open_by_rules or slot.is_blocked_by_exception:
            raise ValidationError(
                'Teacher is not available at the requested time.',
                code='TEACHER_UNAVAILABLE',
                details={'teacher_id': teacher_id, 'start_date_time': instant.isoformat()},
            )
        if slot.spots_left <= 0:
            logger.info('Capacity full teacher_id=%s instant=%s count=%s', teacher_id, instant, slot.booking_count_at_slot)
            raise CapacityFull(
                'This time slot is full for this teacher. Pick another time or teacher.',
                details={
                    'teacher_id': teacher_id,
                    'start_date_time': instant.isoformat(),
                    'computed_capacity': slot.computed_capacity,
                },
            )

    selection = StudentTestSelection(
        student_id=student.id,
        test_category=category,
        test_subtype=subtype,
        test_date_time=instant,
    )
    booking = Booking(
        student_id=student.id,
        teacher_id=teacher_id,
        start_date_time=instant,
        status=BookingStatus.PENDING.value,
        receipt_path=receipt_path.strip(),
        receipt_mime=receipt_mime,
        receipt_original_name=receipt_original_name,
        selection=selection,
    )
    booking = booking_repository.insert_booking_guarded(db, booking, check_slot)
    logger.info('Created booking %s teacher_id=%s student_id=%s', booking.id, teacher_id, student.id)

    if notifier is not None:
        _publish_created(db, notifier, booking, student)

    return booking


def _publish_created(db: Session, notifier: NotificationDispatcher, booking: Booking, student: User) -> None:
    try:
        teacher = db.get(User, booking.teacher_id)
    except SQLAlchemyError:
        logger.exception('Could not load teacher %s for booking notification', booking.teacher_id)
        teacher = None

    base = {
        'booking_id': booking.id,
        'student_id': booking.student_id,
        'teacher_id': booking.teacher_id,
        'status': booking.status,
        'start_date_time': ensure_utc(booking.start_date_time),
        'test_category': booking.selection.test_category,
        'test_subtype': booking.selection.test_subtype,
    }
    notifier.publish(BookingEvent(kind=REQUEST_SUBMITTED, recipient_email=student.email, **base))
    notifier.publish(BookingEvent(
        kind=REQUEST_RECEIVED,
        recipient_email=teacher.email if teacher is not None else None,
        **base,
    ))

