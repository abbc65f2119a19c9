from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


DATABASE_URL = config.DATABASE_URL

connect_args = {'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_booking_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'teacher_availability_rules' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('teacher_availability_rules')}
        migration_steps = [
            (
                'timezone',
                "ALTER TABLE teacher_availability_rules ADD COLUMN timezone VARCHAR "
                f"NOT NULL DEFAULT '{config.DEFAULT_TEACHER_TIMEZONE}'",
            ),
            ('enabled', 'ALTER TABLE teacher_availability_rules ADD COLUMN enabled BOOLEAN NOT NULL DEFAULT TRUE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_rules_teacher_day '
                    'ON teacher_availability_rules(teacher_id, day_of_week)'
                )
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_unavailable_teacher_range '
                    'ON teacher_unavailable_dates(teacher_id, start_date_time, end_date_time)'
                )
            )

        _availability_schema_checked = True


def ensure_booking_schema() -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)

        if 'bookings' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('bookings')}
        migration_steps = [
            ('receipt_path', 'ALTER TABLE bookings ADD COLUMN receipt_path VARCHAR'),
            ('receipt_mime', 'ALTER TABLE bookings ADD COLUMN receipt_mime VARCHAR'),
            ('receipt_original_name', 'ALTER TABLE bookings ADD COLUMN receipt_original_name VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_teacher_start ON bookings(teacher_id, start_date_time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_student_status ON bookings(student_id, status)')
            )

        _booking_schema_checked = True
