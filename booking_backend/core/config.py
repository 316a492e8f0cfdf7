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

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "Baeyens Rijopleiding")

CALENDAR_ID = os.getenv("CALENDAR_ID", "")
CALENDAR_CLIENT_EMAIL = os.getenv("CALENDAR_CLIENT_EMAIL", "")
# Keys pasted into a single-line env var carry literal "\n" sequences.
CALENDAR_PRIVATE_KEY = os.getenv("CALENDAR_PRIVATE_KEY", "").replace("\\n", "\n")
CALENDAR_TIME_ZONE = os.getenv("CALENDAR_TIME_ZONE", "Europe/Amsterdam")
CALENDAR_TIMEOUT_SECONDS = float(os.getenv("CALENDAR_TIMEOUT_SECONDS", "10"))


def calendar_enabled() -> bool:
    return bool(CALENDAR_ID and CALENDAR_CLIENT_EMAIL and CALENDAR_PRIVATE_KEY)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if CALENDAR_TIMEOUT_SECONDS <= 0:
        raise RuntimeError("CALENDAR_TIMEOUT_SECONDS must be positive.")
