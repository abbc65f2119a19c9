"""Data access for teacher weekly rules and one-off unavailability windows.

Reads are public; every mutation is scoped to the owning teacher.
"""

from collections import defaultdict
from datetime import datetime, time

from sqlalchemy.orm import Session

from backend.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from backend.core.timezone_utils import ensure_utc, is_valid_timezone
from backend.models.availability import AvailabilityRule, UnavailableException


def validate_rule_window(day_of_week: int, start_time: time, end_time: time, timezone: str) -> None:
    if not 0 <= day_of_week <= 6:
        raise ValidationError('day_of_week must be between 0 (Sunday) and 6 (Saturday).')
    if start_time >= end_time:
        raise ValidationError('Rule start time must be before its end time.')
    if not is_valid_timezone(timezone):
        raise ValidationError(f'Unknown timezone: {timezone}.', details={'timezone': timezone})


def list_rules(db: Session, teacher_id: str) -> list[AvailabilityRule]:
    return db.query(AvailabilityRule).filter(
        AvailabilityRule.teacher_id == teacher_id,
    ).order_by(AvailabilityRule.day_of_week.asc(), AvailabilityRule.start_time.asc()).all()


def list_rules_for_teachers(db: Session, teacher_ids: list[str]) -> dict[str, list[AvailabilityRule]]:
    rules_by_teacher: dict[str, list[AvailabilityRule]] = defaultdict(list)
    if not teacher_ids:
        return rules_by_teacher

    rules = db.query(AvailabilityRule).filter(AvailabilityRule.teacher_id.in_(teacher_ids)).all()
    for rule in rules:
        rules_by_teacher[rule.teacher_id].append(rule)
    return rules_by_teacher


def list_exceptions(db: Session, teacher_id: str, ending_after: datetime | None = None) -> list[UnavailableException]:
    query = db.query(UnavailableException).filter(UnavailableException.teacher_id == teacher_id)
    if ending_after is not None:
        query = query.filter(UnavailableException.end_date_time > ensure_utc(ending_after))
    return query.order_by(UnavailableException.start_date_time.asc()).all()


def list_exceptions_covering(
    db: Session,
    teacher_ids: list[str],
    instant: datetime,
) -> dict[str, list[UnavailableException]]:
    exceptions_by_teacher: dict[str, list[UnavailableException]] = defaultdict(list)
    if not teacher_ids:
        return exceptions_by_teacher

    instant = ensure_utc(instant)
    exceptions = db.query(UnavailableException).filter(
        UnavailableException.teacher_id.in_(teacher_ids),
        UnavailableException.start_date_time <= instant,
        UnavailableException.end_date_time > instant,
    ).all()
    for exception in exceptions:
        exceptions_by_teacher[exception.teacher_id].append(exception)
    return exceptions_by_teacher


def get_owned_rule(db: Session, rule_id: str, teacher_id: str) -> AvailabilityRule:
    rule = db.get(AvailabilityRule, rule_id)
    if rule is None:
        raise NotFoundError('Availability rule not found.')
    if rule.teacher_id != teacher_id:
        raise ForbiddenError('Only the owning teacher can change this rule.')
    return rule


def create_rule(
    db: Session,
    teacher_id: str,
    day_of_week: int,
    start_time: time,
    end_time: time,
    timezone: str,
    enabled: bool = True,
) -> AvailabilityRule:
    validate_rule_window(day_of_week, start_time, end_time, timezone)

    rule = AvailabilityRule(
        teacher_id=teacher_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        timezone=timezone,
        enabled=enabled,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule


def update_rule(db: Session, rule: AvailabilityRule, changes: dict) -> AvailabilityRule:
    merged = {
        'day_of_week': changes.get('day_of_week', rule.day_of_week),
        'start_time': changes.get('start_time', rule.start_time),
        'end_time': changes.get('end_time', rule.end_time),
        'timezone': changes.get('timezone', rule.timezone),
    }
    validate_rule_window(**merged)

    for field, value in merged.items():
        setattr(rule, field, value)
    if changes.get('enabled') is not None:
        rule.enabled = changes['enabled']

    db.commit()
    db.refresh(rule)
    return rule


def delete_rule(db: Session, rule: AvailabilityRule) -> None:
    db.delete(rule)
    db.commit()


def get_owned_exception(db: Session, exception_id: str, teacher_id: str) -> UnavailableException:
    exception = db.get(UnavailableException, exception_id)
    if exception is None:
        raise NotFoundError('Unavailable window not found.')
    if exception.teacher_id != teacher_id:
        raise ForbiddenError('Only the owning teacher can change this unavailable window.')
    return exception


def create_exception(
    db: Session,
    teacher_id: str,
    start_date_time: datetime,
    end_date_time: datetime,
    reason: str | None = None,
) -> UnavailableException:
    start_date_time = ensure_utc(start_date_time)
    end_date_time = ensure_utc(end_date_time)
    if start_date_time >= end_date_time:
        raise ValidationError('Unavailable window must start before it ends.')

    exception = UnavailableException(
        teacher_id=teacher_id,
        start_date_time=start_date_time,
        end_date_time=end_date_time,
        reason=reason,
    )
    db.add(exception)
    db.commit()
    db.refresh(exception)
    return exception


def delete_exception(db: Session, exception: UnavailableException) -> None:
    db.delete(exception)
    db.commit()
