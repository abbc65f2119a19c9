from datetime import timedelta

from sqlalchemy.orm import Session

from backend.core.exceptions import NotFoundError
from backend.core.timezone_utils import ensure_utc
from backend.models.booking import Booking
from backend.models.conversation import Conversation, SessionStatus, TutoringSession
from backend.models.user import ROLE_TEACHER


def get_conversation_for_booking(db: Session, booking_id: str) -> Conversation | None:
    return db.query(Conversation).filter(Conversation.booking_id == booking_id).first()


def get_conversation_ids(db: Session, booking_ids: list[str]) -> dict[str, str]:
    if not booking_ids:
        return {}
    rows = db.query(Conversation.booking_id, Conversation.id).filter(
        Conversation.booking_id.in_(booking_ids),
    ).all()
    return {booking_id: conversation_id for booking_id, conversation_id in rows}


def get_or_create_conversation(db: Session, booking: Booking) -> Conversation:
    conversation = get_conversation_for_booking(db, booking.id)
    if conversation is not None:
        return conversation

    conversation = Conversation(
        booking_id=booking.id,
        student_id=booking.student_id,
        teacher_id=booking.teacher_id,
    )
    db.add(conversation)
    db.flush()
    return conversation


def get_session_for_booking(db: Session, booking_id: str) -> TutoringSession | None:
    return db.query(TutoringSession).filter(TutoringSession.booking_id == booking_id).first()


def get_or_create_session(
    db: Session,
    booking: Booking,
    conversation: Conversation,
    duration_minutes: int,
) -> TutoringSession:
    session = get_session_for_booking(db, booking.id)
    if session is not None:
        return session

    start = ensure_utc(booking.start_date_time)
    session = TutoringSession(
        booking_id=booking.id,
        conversation_id=conversation.id,
        student_id=booking.student_id,
        teacher_id=booking.teacher_id,
        start_date_time=start,
        end_date_time=start + timedelta(minutes=duration_minutes),
        status=SessionStatus.SCHEDULED.value,
    )
    db.add(session)
    db.flush()
    return session


def list_sessions(db: Session, user_id: str, role: str) -> list[TutoringSession]:
    query = db.query(TutoringSession)
    if role == ROLE_TEACHER:
        query = query.filter(TutoringSession.teacher_id == user_id)
    else:
        query = query.filter(TutoringSession.student_id == user_id)
    return query.order_by(TutoringSession.start_date_time.asc()).all()


def get_session(db: Session, session_id: str) -> TutoringSession:
    session = db.get(TutoringSession, session_id)
    if session is None:
        raise NotFoundError('Session not found.', details={'session_id': session_id})
    return session
