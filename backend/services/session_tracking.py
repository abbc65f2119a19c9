from sqlalchemy.orm import Session

from backend.core.exceptions import ForbiddenError, InvalidTransition
from backend.models.conversation import SessionStatus, TutoringSession
from backend.models.user import User
from backend.repositories import conversation_repository


def _get_teacher_session(db: Session, session_id: str, teacher: User) -> TutoringSession:
    session = conversation_repository.get_session(db, session_id)
    if session.teacher_id != teacher.id:
        raise ForbiddenError('Only the session teacher can change this session.')
    return session


def set_meeting_link(db: Session, session_id: str, teacher: User, meeting_link: str | None) -> TutoringSession:
    session = _get_teacher_session(db, session_id, teacher)
    if session.status == SessionStatus.CANCELLED.value:
        raise InvalidTransition('Cannot set a meeting link on a cancelled session.')

    session.meeting_link = meeting_link
    db.commit()
    db.refresh(session)
    return session


def mark_completed(db: Session, session_id: str, teacher: User) -> TutoringSession:
    session = _get_teacher_session(db, session_id, teacher)
    if session.status == SessionStatus.COMPLETED.value:
        return session
    if session.status != SessionStatus.SCHEDULED.value:
        raise InvalidTransition(
            f'Cannot complete a session that is {session.status}.',
            details={'session_id': session.id},
        )

    session.status = SessionStatus.COMPLETED.value
    db.commit()
    db.refresh(session)
    return session
