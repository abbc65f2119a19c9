import pytest
from sqlalchemy import create_engine, inspect, text

from backend import database


@pytest.fixture
def legacy_engine(monkeypatch: pytest.MonkeyPatch):
    engine = create_engine('sqlite:///:memory:')
    with engine.begin() as connection:
        connection.execute(text(
            'CREATE TABLE teacher_availability_rules ('
            'id VARCHAR PRIMARY KEY, teacher_id VARCHAR, day_of_week INTEGER, start_time TIME, end_time TIME)'
        ))
        connection.execute(text(
            'CREATE TABLE teacher_unavailable_dates ('
            'id VARCHAR PRIMARY KEY, teacher_id VARCHAR, start_date_time DATETIME, end_date_time DATETIME)'
        ))
        connection.execute(text(
            'CREATE TABLE bookings ('
            'id VARCHAR PRIMARY KEY, student_id VARCHAR, teacher_id VARCHAR, start_date_time DATETIME, status VARCHAR)'
        ))

    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_availability_schema_checked', False)
    monkeypatch.setattr(database, '_booking_schema_checked', False)
    yield engine
    engine.dispose()


def test_ensure_availability_schema_adds_missing_columns(legacy_engine) -> None:
    database.ensure_availability_schema()

    inspector = inspect(legacy_engine)
    columns = {column['name'] for column in inspector.get_columns('teacher_availability_rules')}
    indexes = {index['name'] for index in inspector.get_indexes('teacher_availability_rules')}
    assert {'timezone', 'enabled'} <= columns
    assert 'idx_rules_teacher_day' in indexes
    assert database._availability_schema_checked is True


def test_ensure_booking_schema_adds_receipt_columns(legacy_engine) -> None:
    database.ensure_booking_schema()
    database.ensure_booking_schema()

    inspector = inspect(legacy_engine)
    columns = {column['name'] for column in inspector.get_columns('bookings')}
    indexes = {index['name'] for index in inspector.get_indexes('bookings')}
    assert {'receipt_path', 'receipt_mime', 'receipt_original_name'} <= columns
    assert {'idx_bookings_teacher_start', 'idx_bookings_student_status'} <= indexes
