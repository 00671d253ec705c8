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

CORS_ALLOW_ORIGINS = _get_list(
    os.getenv("CORS_ALLOW_ORIGINS"),
    ["http://localhost:5173", "http://localhost:8080"],
)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Service account with domain-wide delegation, stored as the raw key JSON.
GOOGLE_SERVICE_ACCOUNT_KEY = os.getenv("GOOGLE_SERVICE_ACCOUNT_KEY", "")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "")
GOOGLE_PERSONAL_CALENDAR_ID = os.getenv("GOOGLE_PERSONAL_CALENDAR_ID", "")
GOOGLE_IMPERSONATE_EMAIL = os.getenv("GOOGLE_IMPERSONATE_EMAIL", "")
GOOGLE_HTTP_TIMEOUT_SECONDS = float(os.getenv("GOOGLE_HTTP_TIMEOUT_SECONDS", "15"))

EMAIL_NOTIFICATIONS_ENABLED = _get_bool(os.getenv("EMAIL_NOTIFICATIONS_ENABLED"), default=True)
EMAIL_SENDER_ADDRESS = os.getenv("EMAIL_SENDER_ADDRESS", "zach@vantageailabs.com")
EMAIL_SENDER_NAME = os.getenv("EMAIL_SENDER_NAME", "Vantage AI Labs")

SITE_URL = os.getenv("SITE_URL", "https://vantageailabs.com").rstrip("/")

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/New_York")
MEETING_SUMMARY_PREFIX = os.getenv("MEETING_SUMMARY_PREFIX", "Strategy Call with")


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
