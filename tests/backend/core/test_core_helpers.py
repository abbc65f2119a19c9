from datetime import datetime, timedelta
from threading import Thread

import pytest
import pytz

from backend.core import config
from backend.core import slot_lock as slot_lock_module
from backend.core.exceptions import CapacityFull, DependencyFailure, ValidationError
from backend.core.slot_lock import slot_lock
from backend.core.timezone_utils import ensure_utc, is_on_slot_grid, is_valid_timezone, sunday_based_weekday, to_local
from conftest import utc


def test_domain_errors_map_to_http_details() -> None:
    http_error = CapacityFull('Full.', details={'teacher_id': 't-1'}).to_http_exception()

    assert http_error.status_code == 409
    assert http_error.detail == {'message': 'Full.', 'code': 'CAPACITY_FULL', 'details': {'teacher_id': 't-1'}}


def test_validation_error_accepts_custom_code() -> None:
    error = ValidationError('Closed.', code='TEACHER_UNAVAILABLE')

    assert error.to_http_exception().status_code == 400
    assert error.code == 'TEACHER_UNAVAILABLE'


def test_dependency_failure_is_retryable() -> None:
    error = DependencyFailure('Chat down.', details={'booking_id': 'b-1'})

    assert error.status_code == 503
    assert error.details == {'retryable': True, 'booking_id': 'b-1'}


def test_ensure_utc_treats_naive_values_as_utc() -> None:
    assert ensure_utc(datetime(2030, 1, 7, 8, 0)) == utc(2030, 1, 7, 8, 0)
    rome = pytz.timezone('Europe/Rome').localize(datetime(2030, 1, 7, 9, 0))
    assert ensure_utc(rome) == utc(2030, 1, 7, 8, 0)


def test_local_weekday_counts_sunday_as_zero() -> None:
    # Sunday 23:30 UTC is already Monday in Rome.
    local = to_local(utc(2030, 1, 6, 23, 30), 'Europe/Rome')

    assert sunday_based_weekday(local) == 1
    assert sunday_based_weekday(to_local(utc(2030, 1, 6, 12, 0), 'Europe/Rome')) == 0


def test_is_valid_timezone() -> None:
    assert is_valid_timezone('America/New_York') is True
    assert is_valid_timezone('Mars/Olympus') is False


def test_slot_lock_serializes_same_slot() -> None:
    order = []

    def worker() -> None:
        with slot_lock('teacher-1', utc(2030, 1, 7, 8, 0)):
            order.append('worker')

    with slot_lock('teacher-1', datetime(2030, 1, 7, 8, 0)):
        thread = Thread(target=worker)
        thread.start()
        thread.join(timeout=0.2)
        order.append('holder')

    thread.join()
    assert order == ['holder', 'worker']


@pytest.mark.parametrize(
    ('attribute', 'value'),
    [
        ('SLOT_CAPACITY', 0),
        ('SESSION_DURATION_MINUTES', 0),
    ],
)
def test_validate_runtime_config_rejects_non_positive_values(
    monkeypatch: pytest.MonkeyPatch,
    attribute: str,
    value: int,
) -> None:
    monkeypatch.setattr(config, attribute, value)

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()


def test_validate_runtime_config_requires_secret_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setattr(config, 'JWT_SECRET_KEY', 'change-me')

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()


def test_is_on_slot_grid_uses_utc_minutes() -> None:
    rome = pytz.timezone('Europe/Rome').localize(datetime(2030, 1, 7, 9, 30))

    assert is_on_slot_grid(rome, 30) is True
    assert is_on_slot_grid(rome, 60) is False
    assert is_on_slot_grid(utc(2030, 1, 7, 8, 0, 59), 30) is False


def test_validate_runtime_config_rejects_uneven_slot_increment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'SLOT_INCREMENT_MINUTES', 7)

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()


def test_slot_lock_pool_stays_bounded() -> None:
    start = utc(2030, 1, 7, 8, 0)
    for index in range(1000):
        with slot_lock(f'teacher-{index % 7}', start + timedelta(minutes=30 * index)):
            pass

    assert len(slot_lock_module._slot_locks) == slot_lock_module.SLOT_LOCK_STRIPES


def test_same_slot_maps_to_same_lock() -> None:
    naive_key = slot_lock_module._slot_key('teacher-1', datetime(2030, 1, 7, 8, 0))
    aware_key = slot_lock_module._slot_key('teacher-1', utc(2030, 1, 7, 8, 0))

    assert slot_lock_module._get_slot_lock(naive_key) is slot_lock_module._get_slot_lock(aware_key)
