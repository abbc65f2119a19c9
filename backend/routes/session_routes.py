from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_teacher
from backend.core.exceptions import DomainError
from backend.database import get_db
from backend.models.user import User
from backend.repositories import conversation_repository
from backend.routes.errors import database_unavailable, ensure_database_ready
from backend.services import session_tracking

router = APIRouter(tags=['sessions'])

MAX_MEETING_LINK_LENGTH = 500


class SessionResponse(BaseModel):
    id: str
    booking_id: str
    conversation_id: str | None = None
    student_id: str
    teacher_id: str
    start_date_time: datetime
    end_date_time: datetime
    meeting_link: str | None = None
    status: str

    class Config:
        from_attributes = True


class UpdateSessionRequest(BaseModel):
    meeting_link: str | None = None

    @field_validator('meeting_link')
    @classmethod
    def validate_meeting_link(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_MEETING_LINK_LENGTH:
            raise ValueError(f'Meeting link must be {MAX_MEETING_LINK_LENGTH} characters or fewer.')
        if not normalized.startswith(('https://', 'http://')):
            raise ValueError('Meeting link must be an http(s) URL.')

        return normalized


@router.get('', response_model=list[SessionResponse])
def list_my_sessions(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return conversation_repository.list_sessions(db, user.id, user.role)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{session_id}', response_model=SessionResponse)
def update_session(
    session_id: str,
    data: UpdateSessionRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return session_tracking.set_meeting_link(db, session_id, teacher, data.meeting_link)
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{session_id}/complete', response_model=SessionResponse)
def complete_session(
    session_id: str,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return session_tracking.mark_completed(db, session_id, teacher)
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
