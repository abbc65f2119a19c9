import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_student
from backend.core.exceptions import DomainError
from backend.database import get_db
from backend.models.booking import (
    SUBTYPES_BY_CATEGORY,
    TEST_CATEGORY_DETAILS,
    Booking,
    BookingStatus,
    ExamCategory,
)
from backend.models.user import ROLE_TEACHER, User
from backend.repositories import booking_repository, conversation_repository
from backend.routes.errors import database_unavailable, ensure_database_ready
from backend.services import booking_creator, booking_lifecycle
from backend.services.notifications import NotificationDispatcher, get_notification_dispatcher

router = APIRouter(tags=['bookings'])

logger = logging.getLogger(__name__)

MAX_RECEIPT_NAME_LENGTH = 200


class ExamCategoryOptionResponse(BaseModel):
    test_category: str
    label: str
    description: str
    requires_subtype: bool
    subtypes: list[str]


class CreateBookingRequest(BaseModel):
    teacher_id: str
    test_category: ExamCategory
    test_subtype: str | None = None
    target_instant: datetime
    receipt_path: str
    receipt_mime: str
    receipt_original_name: str | None = None

    @field_validator('test_subtype')
    @classmethod
    def normalize_subtype(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().upper()
        return normalized or None

    @field_validator('receipt_mime')
    @classmethod
    def normalize_mime(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('receipt_original_name')
    @classmethod
    def validate_receipt_name(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        return normalized[:MAX_RECEIPT_NAME_LENGTH]


class TransitionRequest(BaseModel):
    action: str

    @field_validator('action')
    @classmethod
    def validate_action(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in booking_lifecycle.ACTION_TARGETS:
            raise ValueError('Action must be accept, reject or cancel.')
        return normalized


class BookingResponse(BaseModel):
    id: str
    student_id: str
    teacher_id: str
    student_test_selection_id: str
    test_category: str
    test_subtype: str | None = None
    start_date_time: datetime
    status: str
    receipt_path: str | None = None
    receipt_mime: str | None = None
    receipt_original_name: str | None = None
    conversation_id: str | None = None
    created_at: datetime
    updated_at: datetime


class TransitionResponse(BaseModel):
    booking: BookingResponse
    conversation_id: str | None = None
    session_id: str | None = None


def to_booking_response(booking: Booking, conversation_id: str | None = None) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        student_id=booking.student_id,
        teacher_id=booking.teacher_id,
        student_test_selection_id=booking.student_test_selection_id,
        test_category=booking.selection.test_category,
        test_subtype=booking.selection.test_subtype,
        start_date_time=booking.start_date_time,
        status=booking.status,
        receipt_path=booking.receipt_path,
        receipt_mime=booking.receipt_mime,
        receipt_original_name=booking.receipt_original_name,
        conversation_id=conversation_id,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


@router.get('/test-categories', response_model=list[ExamCategoryOptionResponse])
def list_test_categories():
    return [
        ExamCategoryOptionResponse(
            test_category=category.value,
            label=label,
            description=description,
            requires_subtype=category in SUBTYPES_BY_CATEGORY,
            subtypes=list(SUBTYPES_BY_CATEGORY.get(category, ())),
        )
        for category, (label, description) in TEST_CATEGORY_DETAILS.items()
    ]


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    student: User = Depends(require_student),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    ensure_database_ready()

    try:
        booking = booking_creator.create_booking_request(
            db,
            student=student,
            teacher_id=data.teacher_id,
            test_category=data.test_category.value,
            test_subtype=data.test_subtype,
            target_instant=data.target_instant,
            receipt_path=data.receipt_path,
            receipt_mime=data.receipt_mime,
            receipt_original_name=data.receipt_original_name,
            notifier=notifier,
        )
        return to_booking_response(booking)
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Booking creation failed for teacher %s', data.teacher_id)
        raise database_unavailable() from exc


@router.get('', response_model=list[BookingResponse])
def list_my_bookings(
    status_filter: BookingStatus | None = Query(default=None, alias='status'),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        status_value = status_filter.value if status_filter is not None else None
        if user.role == ROLE_TEACHER:
            bookings = booking_repository.list_bookings(db, teacher_id=user.id, status=status_value)
        else:
            bookings = booking_repository.list_bookings(db, student_id=user.id, status=status_value)

        conversation_ids = conversation_repository.get_conversation_ids(db, [booking.id for booking in bookings])
        return [to_booking_response(booking, conversation_ids.get(booking.id)) for booking in bookings]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{booking_id}/transition', response_model=TransitionResponse)
def transition_booking(
    booking_id: str,
    data: TransitionRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    ensure_database_ready()

    try:
        result = booking_lifecycle.transition_booking(db, booking_id, data.action, user, notifier=notifier)
        booking = booking_repository.get_booking(db, booking_id)
        return TransitionResponse(
            booking=to_booking_response(booking, result.conversation_id),
            conversation_id=result.conversation_id,
            session_id=result.session_id,
        )
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
