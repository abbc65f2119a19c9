from datetime import time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from backend.models.availability import AvailabilityRule
from backend.models.booking import ExamCategory
from backend.routes.availability_routes import (
    CreateExceptionRequest,
    CreateRuleRequest,
    UpdateRuleRequest,
    create_exception,
    create_rule,
    delete_exception,
    delete_rule,
    get_teacher_availability,
    list_exceptions,
    list_rules,
    list_teacher_availability,
    update_rule,
)
from conftest import add_booking, add_exception, add_student, add_teacher, utc

MONDAY_MORNING = [(1, time(9, 0), time(12, 0))]
SLOT = utc(2027, 2, 8, 8, 0)


def test_create_rule_request_normalizes_timezone() -> None:
    request = CreateRuleRequest(day_of_week=1, start_time=time(9, 0), end_time=time(12, 0), timezone=' Europe/Rome ')

    assert request.timezone == 'Europe/Rome'


@pytest.mark.parametrize(
    'payload',
    [
        {'day_of_week': 7, 'start_time': time(9, 0), 'end_time': time(12, 0)},
        {'day_of_week': 1, 'start_time': time(12, 0), 'end_time': time(9, 0)},
        {'day_of_week': 1, 'start_time': time(9, 0), 'end_time': time(9, 0)},
        {'day_of_week': 1, 'start_time': time(9, 0), 'end_time': time(12, 0), 'timezone': 'Mars/Olympus'},
    ],
)
def test_create_rule_request_rejects_invalid_windows(payload: dict) -> None:
    with pytest.raises(ValidationError):
        CreateRuleRequest(**payload)


def test_create_exception_request_rejects_inverted_window() -> None:
    with pytest.raises(ValidationError):
        CreateExceptionRequest(start_date_time=utc(2027, 2, 8, 10, 0), end_date_time=utc(2027, 2, 8, 9, 0))


def test_create_exception_request_blanks_empty_reason() -> None:
    request = CreateExceptionRequest(
        start_date_time=utc(2027, 2, 8, 9, 0),
        end_date_time=utc(2027, 2, 8, 10, 0),
        reason='   ',
    )

    assert request.reason is None


def test_create_exception_request_rejects_long_reason() -> None:
    with pytest.raises(ValidationError):
        CreateExceptionRequest(
            start_date_time=utc(2027, 2, 8, 9, 0),
            end_date_time=utc(2027, 2, 8, 10, 0),
            reason='x' * 301,
        )


def test_list_teacher_availability_reports_every_active_teacher(db, skip_schema_checks) -> None:
    open_teacher = add_teacher(db, 'open@example.com', rules=MONDAY_MORNING)
    closed_teacher = add_teacher(db, 'closed@example.com')
    add_teacher(db, 'inactive@example.com', is_active=False, rules=MONDAY_MORNING)
    add_booking(db, add_student(db), open_teacher, SLOT)

    rows = list_teacher_availability(at=SLOT, test_category=None, db=db)

    by_teacher = {row.teacher_id: row for row in rows}
    assert set(by_teacher) == {open_teacher.id, closed_teacher.id}
    assert by_teacher[open_teacher.id].is_available is True
    assert by_teacher[open_teacher.id].booking_count_at_slot == 1
    assert by_teacher[open_teacher.id].spots_left == 3
    assert by_teacher[closed_teacher.id].is_available is False


def test_list_teacher_availability_filters_by_category(db, skip_schema_checks) -> None:
    tolc_teacher = add_teacher(db, 'tolc@example.com', subjects=['TOLC'], rules=MONDAY_MORNING)
    add_teacher(db, 'cents@example.com', subjects=['CENTS'], rules=MONDAY_MORNING)

    rows = list_teacher_availability(at=SLOT, test_category=ExamCategory.TOLC, db=db)

    assert [row.teacher_id for row in rows] == [tolc_teacher.id]


def test_get_teacher_availability_reports_exception_block(db, skip_schema_checks) -> None:
    teacher = add_teacher(db, rules=MONDAY_MORNING)
    add_exception(db, teacher, utc(2027, 2, 8, 7, 0), utc(2027, 2, 8, 9, 0), 'Conference')

    row = get_teacher_availability(teacher_id=teacher.id, at=SLOT, db=db)

    assert row.is_open_by_rules is True
    assert row.is_blocked_by_exception is True
    assert row.is_available is False


def test_get_teacher_availability_returns_not_found_for_unknown_teacher(db, skip_schema_checks) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_teacher_availability(teacher_id='missing', at=SLOT, db=db)

    assert exception_info.value.status_code == 404


def test_rule_crud_is_scoped_to_owner(db, skip_schema_checks) -> None:
    teacher = add_teacher(db)
    other_teacher = add_teacher(db, 'other@example.com')

    created = create_rule(
        data=CreateRuleRequest(day_of_week=1, start_time=time(9, 0), end_time=time(12, 0)),
        teacher=teacher,
        db=db,
    )
    assert created.teacher_id == teacher.id
    assert created.timezone == 'Europe/Rome'

    with pytest.raises(HTTPException) as exception_info:
        update_rule(rule_id=created.id, data=UpdateRuleRequest(enabled=False), teacher=other_teacher, db=db)
    assert exception_info.value.status_code == 403

    updated = update_rule(rule_id=created.id, data=UpdateRuleRequest(end_time=time(13, 0)), teacher=teacher, db=db)
    assert updated.end_time == time(13, 0)
    assert [rule.id for rule in list_rules(teacher_id=teacher.id, db=db)] == [created.id]

    delete_rule(rule_id=created.id, teacher=teacher, db=db)
    assert db.query(AvailabilityRule).count() == 0


def test_update_rule_rejects_merged_window_that_inverts(db, skip_schema_checks) -> None:
    teacher = add_teacher(db, rules=MONDAY_MORNING)
    rule = db.query(AvailabilityRule).one()

    with pytest.raises(HTTPException) as exception_info:
        update_rule(rule_id=rule.id, data=UpdateRuleRequest(start_time=time(12, 30)), teacher=teacher, db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['code'] == 'VALIDATION_ERROR'


def test_delete_rule_returns_not_found_when_missing(db, skip_schema_checks) -> None:
    teacher = add_teacher(db)

    with pytest.raises(HTTPException) as exception_info:
        delete_rule(rule_id='missing', teacher=teacher, db=db)

    assert exception_info.value.status_code == 404


def test_exception_lifecycle(db, skip_schema_checks) -> None:
    teacher = add_teacher(db)
    other_teacher = add_teacher(db, 'other@example.com')

    created = create_exception(
        data=CreateExceptionRequest(
            start_date_time=utc(2099, 2, 8, 9, 0),
            end_date_time=utc(2099, 2, 8, 12, 0),
            reason='Exam board',
        ),
        teacher=teacher,
        db=db,
    )
    add_exception(db, teacher, utc(2020, 1, 1, 9, 0), utc(2020, 1, 1, 10, 0))

    upcoming = list_exceptions(teacher_id=teacher.id, upcoming_only=True, db=db)
    everything = list_exceptions(teacher_id=teacher.id, upcoming_only=False, db=db)
    assert [exception.id for exception in upcoming] == [created.id]
    assert len(everything) == 2

    with pytest.raises(HTTPException) as exception_info:
        delete_exception(exception_id=created.id, teacher=other_teacher, db=db)
    assert exception_info.value.status_code == 403

    delete_exception(exception_id=created.id, teacher=teacher, db=db)
    assert len(list_exceptions(teacher_id=teacher.id, upcoming_only=False, db=db)) == 1


def test_list_teacher_availability_rejects_off_grid_instant(db, skip_schema_checks) -> None:
    add_teacher(db, rules=MONDAY_MORNING)

    with pytest.raises(HTTPException) as exception_info:
        list_teacher_availability(at=utc(2027, 2, 8, 8, 0, 1), test_category=None, db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['code'] == 'OFF_SLOT_GRID'
