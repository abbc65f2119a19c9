"""Booking status transitions and the provisioning tied to confirmation.

pending -> confirmed    teacher accepts; a conversation and a session are
                        provisioned in the same transaction
pending -> cancelled    teacher rejects or student withdraws
confirmed -> cancelled  either party, before the session starts
cancelled               terminal
"""

import logging
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.exceptions import DependencyFailure, ForbiddenError, InvalidTransition, ValidationError
from backend.core.timezone_utils import ensure_utc, utc_now
from backend.models.booking import Booking, BookingStatus
from backend.models.conversation import SessionStatus
from backend.models.user import ROLE_STUDENT, ROLE_TEACHER, User
from backend.repositories import booking_repository, conversation_repository
from backend.services.notifications import (
    BOOKING_CANCELLED,
    REQUEST_ACCEPTED,
    REQUEST_DECLINED,
    BookingEvent,
    NotificationDispatcher,
)

logger = logging.getLogger(__name__)

ACTION_ACCEPT = 'accept'
ACTION_REJECT = 'reject'
ACTION_CANCEL = 'cancel'

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING.value: {BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value},
    BookingStatus.CONFIRMED.value: {BookingStatus.CANCELLED.value},
    BookingStatus.CANCELLED.value: set(),
}

ACTION_TARGETS = {
    ACTION_ACCEPT: BookingStatus.CONFIRMED.value,
    ACTION_REJECT: BookingStatus.CANCELLED.value,
    ACTION_CANCEL: BookingStatus.CANCELLED.value,
}


class TransitionResult(BaseModel):
    booking_id: str
    status: str
    conversation_id: str | None = None
    session_id: str | None = None


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(current_status, set())


def _check_actor(booking: Booking, action: str, actor: User) -> None:
    if action in (ACTION_ACCEPT, ACTION_REJECT):
        if actor.role != ROLE_TEACHER or actor.id != booking.teacher_id:
            raise ForbiddenError('Only the requested teacher can accept or reject this booking.')
        return

    is_student_owner = actor.role == ROLE_STUDENT and actor.id == booking.student_id
    is_teacher_owner = actor.role == ROLE_TEACHER and actor.id == booking.teacher_id
    if not (is_student_owner or is_teacher_owner):
        raise ForbiddenError('Only the student or teacher on this booking can cancel it.')
    if is_teacher_owner and booking.status == BookingStatus.PENDING.value:
        raise InvalidTransition('Teachers decline pending requests with the reject action.')


def _check_transition(booking: Booking, action: str, now: datetime) -> str:
    new_status = ACTION_TARGETS[action]
    if not can_transition(booking.status, new_status):
        raise InvalidTransition(
            f'Cannot {action} a booking that is {booking.status}.',
            details={'booking_id': booking.id, 'status': booking.status},
        )
    if booking.status == BookingStatus.CONFIRMED.value and ensure_utc(booking.start_date_time) <= now:
        raise InvalidTransition(
            'Confirmed bookings can only be cancelled before the session starts.',
            details={'booking_id': booking.id},
        )
    return new_status


def transition_booking(
    db: Session,
    booking_id: str,
    action: str,
    actor: User,
    notifier: NotificationDispatcher | None = None,
    session_duration_minutes: int | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    if action not in ACTION_TARGETS:
        raise ValidationError('Action must be one of accept, reject or cancel.', details={'action': action})

    duration = session_duration_minutes or config.SESSION_DURATION_MINUTES
    now = ensure_utc(now or utc_now())

    try:
        booking = booking_repository.get_booking(db, booking_id, for_update=True)
        _check_actor(booking, action, actor)
        previous_status = booking.status
        new_status = _check_transition(booking, action, now)

        booking_repository.update_status(db, booking, new_status)
        conversation_id = None
        session_id = None

        if new_status == BookingStatus.CONFIRMED.value:
            conversation_id, session_id = _provision_conversation(db, booking, duration)
        elif previous_status == BookingStatus.CONFIRMED.value:
            _cancel_session(db, booking)

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info('Booking %s %s by %s: %s -> %s', booking.id, action, actor.id, previous_status, new_status)
    result = TransitionResult(
        booking_id=booking.id,
        status=new_status,
        conversation_id=conversation_id,
        session_id=session_id,
    )

    if notifier is not None:
        _publish_transition(db, notifier, booking, action, actor, conversation_id)

    return result


def accept_booking(db: Session, booking_id: str, actor: User, **kwargs) -> TransitionResult:
    return transition_booking(db, booking_id, ACTION_ACCEPT, actor, **kwargs)


def reject_booking(db: Session, booking_id: str, actor: User, **kwargs) -> TransitionResult:
    return transition_booking(db, booking_id, ACTION_REJECT, actor, **kwargs)


def cancel_booking(db: Session, booking_id: str, actor: User, **kwargs) -> TransitionResult:
    return transition_booking(db, booking_id, ACTION_CANCEL, actor, **kwargs)


def _provision_conversation(db: Session, booking: Booking, duration_minutes: int) -> tuple[str, str]:
    try:
        conversation = conversation_repository.get_or_create_conversation(db, booking)
        session = conversation_repository.get_or_create_session(db, booking, conversation, duration_minutes)
    except SQLAlchemyError as exc:
        logger.exception('Provisioning conversation failed for booking %s', booking.id)
        raise DependencyFailure(
            'Could not open the conversation for this booking. Try accepting again.',
            details={'booking_id': booking.id},
        ) from exc
    return conversation.id, session.id


def _cancel_session(db: Session, booking: Booking) -> None:
    session = conversation_repository.get_session_for_booking(db, booking.id)
    if session is not None and session.status == SessionStatus.SCHEDULED.value:
        session.status = SessionStatus.CANCELLED.value
        db.flush()


def _publish_transition(
    db: Session,
    notifier: NotificationDispatcher,
    booking: Booking,
    action: str,
    actor: User,
    conversation_id: str | None,
) -> None:
    kind = {
        ACTION_ACCEPT: REQUEST_ACCEPTED,
        ACTION_REJECT: REQUEST_DECLINED,
        ACTION_CANCEL: BOOKING_CANCELLED,
    }[action]

    # A cancellation is addressed to whichever party did not act.
    recipient_id = booking.student_id
    if action == ACTION_CANCEL and actor.id == booking.student_id:
        recipient_id = booking.teacher_id

    try:
        recipient = db.get(User, recipient_id)
        selection = booking.selection
    except SQLAlchemyError:
        logger.exception('Could not load notification details for booking %s', booking.id)
        return

    notifier.publish(BookingEvent(
        kind=kind,
        booking_id=booking.id,
        student_id=booking.student_id,
        teacher_id=booking.teacher_id,
        status=booking.status,
        start_date_time=ensure_utc(booking.start_date_time),
        recipient_email=recipient.email if recipient is not None else None,
        test_category=selection.test_category if selection is not None else None,
        test_subtype=selection.test_subtype if selection is not None else None,
        conversation_id=conversation_id,
    ))
