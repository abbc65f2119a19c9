import logging
from datetime import datetime, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_teacher
from backend.core import config
from backend.core.exceptions import DomainError
from backend.core.timezone_utils import ensure_utc, is_valid_timezone, utc_now
from backend.database import get_db
from backend.models.booking import ExamCategory
from backend.models.user import User
from backend.repositories import availability_repository, teacher_repository
from backend.routes.errors import database_unavailable, ensure_database_ready
from backend.services import availability_evaluator

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)

MAX_EXCEPTION_REASON_LENGTH = 300


class TeacherAvailabilityResponse(BaseModel):
    teacher_id: str
    is_available: bool
    booking_count_at_slot: int
    computed_capacity: int
    spots_left: int

    class Config:
        from_attributes = True


class SlotAvailabilityResponse(TeacherAvailabilityResponse):
    is_open_by_rules: bool
    is_blocked_by_exception: bool


class CreateRuleRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    enabled: bool = True
    timezone: str = config.DEFAULT_TEACHER_TIMEZONE

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        normalized = value.strip()
        if not is_valid_timezone(normalized):
            raise ValueError('Unknown timezone.')
        return normalized

    @model_validator(mode='after')
    def validate_window(self) -> 'CreateRuleRequest':
        if self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self


class UpdateRuleRequest(BaseModel):
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    start_time: time | None = None
    end_time: time | None = None
    enabled: bool | None = None
    timezone: str | None = None


class RuleResponse(BaseModel):
    id: str
    teacher_id: str
    day_of_week: int
    start_time: time
    end_time: time
    enabled: bool
    timezone: str

    class Config:
        from_attributes = True


class CreateExceptionRequest(BaseModel):
    start_date_time: datetime
    end_date_time: datetime
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_EXCEPTION_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_EXCEPTION_REASON_LENGTH} characters or fewer.')

        return normalized

    @model_validator(mode='after')
    def validate_window(self) -> 'CreateExceptionRequest':
        if ensure_utc(self.start_date_time) >= ensure_utc(self.end_date_time):
            raise ValueError('Unavailable window must start before it ends.')
        return self


class ExceptionResponse(BaseModel):
    id: str
    teacher_id: str
    start_date_time: datetime
    end_date_time: datetime
    reason: str | None = None

    class Config:
        from_attributes = True


@router.get('/teachers', response_model=list[TeacherAvailabilityResponse])
def list_teacher_availability(
    at: datetime = Query(..., description='Target instant, ISO-8601 UTC.'),
    test_category: ExamCategory | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        category = test_category.value if test_category is not None else None
        rows = availability_evaluator.evaluate_active_teachers(db, ensure_utc(at), category)
        return [TeacherAvailabilityResponse(**row.model_dump()) for row in rows]
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        logger.exception('Availability lookup failed at %s', at)
        raise database_unavailable() from exc


@router.get('/teachers/{teacher_id}', response_model=SlotAvailabilityResponse)
def get_teacher_availability(
    teacher_id: str,
    at: datetime = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        teacher_repository.get_active_teacher(db, teacher_id)
        row = availability_evaluator.evaluate_teacher_live(db, teacher_id, ensure_utc(at))
        return SlotAvailabilityResponse(**row.model_dump())
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/rules', response_model=list[RuleResponse])
def list_rules(teacher_id: str = Query(...), db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return availability_repository.list_rules(db, teacher_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/rules', response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
def create_rule(
    data: CreateRuleRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability_repository.create_rule(
            db,
            teacher_id=teacher.id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            timezone=data.timezone,
            enabled=data.enabled,
        )
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/rules/{rule_id}', response_model=RuleResponse)
def update_rule(
    rule_id: str,
    data: UpdateRuleRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        rule = availability_repository.get_owned_rule(db, rule_id, teacher.id)
        return availability_repository.update_rule(db, rule, data.model_dump(exclude_none=True))
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/rules/{rule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: str,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        rule = availability_repository.get_owned_rule(db, rule_id, teacher.id)
        availability_repository.delete_rule(db, rule)
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/exceptions', response_model=list[ExceptionResponse])
def list_exceptions(
    teacher_id: str = Query(...),
    upcoming_only: bool = Query(default=True),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        ending_after = utc_now() if upcoming_only else None
        return availability_repository.list_exceptions(db, teacher_id, ending_after=ending_after)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/exceptions', response_model=ExceptionResponse, status_code=status.HTTP_201_CREATED)
def create_exception(
    data: CreateExceptionRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability_repository.create_exception(
            db,
            teacher_id=teacher.id,
            start_date_time=data.start_date_time,
            end_date_time=data.end_date_time,
            reason=data.reason,
        )
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/exceptions/{exception_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_exception(
    exception_id: str,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        exception = availability_repository.get_owned_exception(db, exception_id, teacher.id)
        availability_repository.delete_exception(db, exception)
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

