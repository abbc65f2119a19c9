from sqlalchemy.orm import Session

from backend.core.exceptions import NotFoundError
from backend.models.teacher_profile import TeacherProfile


def get_active_teacher(db: Session, teacher_id: str) -> TeacherProfile:
    profile = db.query(TeacherProfile).filter(TeacherProfile.user_id == teacher_id).first()
    if profile is None or not profile.is_active:
        raise NotFoundError('Teacher not found.', details={'teacher_id': teacher_id})
    return profile


def list_active_teachers(db: Session, test_category: str | None = None) -> list[TeacherProfile]:
    profiles = db.query(TeacherProfile).filter(
        TeacherProfile.is_active.is_(True),
    ).order_by(TeacherProfile.user_id.asc()).all()

    if test_category is None:
        return profiles
    # subjects is a JSON list; filtering here keeps SQLite and Postgres alike.
    return [profile for profile in profiles if profile.teaches(test_category)]


def lock_teacher_profile(db: Session, teacher_id: str) -> TeacherProfile | None:
    """Take a row lock on the teacher profile for the rest of the transaction."""
    return db.query(TeacherProfile).filter(
        TeacherProfile.user_id == teacher_id,
    ).with_for_update().first()
