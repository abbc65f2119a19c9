import logging
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Iterator

from backend.core.timezone_utils import ensure_utc

logger = logging.getLogger(__name__)

SLOT_LOCK_STRIPES = 64

# Fixed pool; unrelated slots may share a stripe and simply wait on each other.
_slot_locks: tuple[Lock, ...] = tuple(Lock() for _ in range(SLOT_LOCK_STRIPES))


def _slot_key(teacher_id: str, instant: datetime) -> tuple[str, str]:
    return teacher_id, ensure_utc(instant).isoformat()


def _get_slot_lock(key: tuple[str, str]) -> Lock:
    return _slot_locks[hash(key) % SLOT_LOCK_STRIPES]


@contextmanager
def slot_lock(teacher_id: str, instant: datetime) -> Iterator[None]:
    """Serialize capacity checks for one (teacher, instant) slot in this process.

    Cross-process exclusion comes from the row lock taken on the teacher
    profile inside the same block.
    """
    key = _slot_key(teacher_id, instant)
    lock = _get_slot_lock(key)
    with lock:
        logger.debug('slot_lock acquired teacher_id=%s instant=%s', *key)
        yield
