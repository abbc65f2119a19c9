import os
from datetime import datetime, time

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('NOTIFICATIONS_ENABLED', 'false')

import pytest  # noqa: E402
import pytz  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from backend.database import Base  # noqa: E402
from backend.models.availability import AvailabilityRule, UnavailableException  # noqa: E402
from backend.models.booking import Booking, BookingStatus, StudentTestSelection  # noqa: E402
from backend.models import conversation  # noqa: E402,F401
from backend.models.teacher_profile import TeacherProfile  # noqa: E402
from backend.models.user import ROLE_STUDENT, ROLE_TEACHER, User  # noqa: E402

ROUTE_MODULES = (
    'backend.routes.availability_routes',
    'backend.routes.booking_routes',
    'backend.routes.session_routes',
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=pytz.utc)


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    for module in ROUTE_MODULES:
        monkeypatch.setattr(f'{module}.ensure_database_ready', lambda: None)


def add_user(db, email: str, role: str, name: str = '') -> User:
    user = User(email=email, role=role, name=name or email.split('@')[0])
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_teacher(
    db,
    email: str = 'teacher@example.com',
    subjects: list[str] | None = None,
    is_active: bool = True,
    rules: list[tuple[int, time, time]] | None = None,
    timezone: str = 'Europe/Rome',
) -> User:
    teacher = add_user(db, email, ROLE_TEACHER)
    db.add(TeacherProfile(
        user_id=teacher.id,
        headline='Exam coach',
        subjects=subjects if subjects is not None else ['TOLC', 'ITA_L2'],
        is_active=is_active,
    ))
    for day_of_week, start_time, end_time in rules or []:
        db.add(AvailabilityRule(
            teacher_id=teacher.id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            enabled=True,
            timezone=timezone,
        ))
    db.commit()
    return teacher


def add_student(db, email: str = 'student@example.com') -> User:
    return add_user(db, email, ROLE_STUDENT)


def add_exception(db, teacher: User, start: datetime, end: datetime, reason: str | None = None) -> UnavailableException:
    exception = UnavailableException(teacher_id=teacher.id, start_date_time=start, end_date_time=end, reason=reason)
    db.add(exception)
    db.commit()
    return exception


def add_booking(
    db,
    student: User,
    teacher: User,
    start: datetime,
    status: str = BookingStatus.PENDING.value,
) -> Booking:
    selection = StudentTestSelection(
        student_id=student.id,
        test_category='ITA_L2',
        test_date_time=start,
    )
    booking = Booking(
        student_id=student.id,
        teacher_id=teacher.id,
        start_date_time=start,
        status=status,
        receipt_path=f'{student.id}/receipt.pdf',
        receipt_mime='application/pdf',
        selection=selection,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


class RecordingDispatcher:
    """Stands in for NotificationDispatcher and keeps published events."""

    def __init__(self) -> None:
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)

