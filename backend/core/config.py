import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tutoring.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Maximum number of pending + confirmed bookings per (teacher, instant).
SLOT_CAPACITY = int(os.getenv("SLOT_CAPACITY", "4"))
SESSION_DURATION_MINUTES = int(os.getenv("SESSION_DURATION_MINUTES", "60"))
# Bookable instants fall on this grid, counted from midnight UTC.
SLOT_INCREMENT_MINUTES = int(os.getenv("SLOT_INCREMENT_MINUTES", "30"))
DEFAULT_TEACHER_TIMEZONE = os.getenv("DEFAULT_TEACHER_TIMEZONE", "Europe/Rome")

NOTIFICATIONS_ENABLED = _get_bool(os.getenv("NOTIFICATIONS_ENABLED"), default=True)
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "")


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SLOT_CAPACITY < 1:
        raise RuntimeError("SLOT_CAPACITY must be a positive integer.")
    if SESSION_DURATION_MINUTES < 1:
        raise RuntimeError("SESSION_DURATION_MINUTES must be a positive integer.")
    if SLOT_INCREMENT_MINUTES < 1 or (24 * 60) % SLOT_INCREMENT_MINUTES:
        raise RuntimeError("SLOT_INCREMENT_MINUTES must divide a day evenly.")
