import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    parsed = int(value)
    if parsed <= 0:
        return default
    return parsed


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
APP_DEBUG = _get_bool(os.getenv("APP_DEBUG"), default=False)

ALLOWED_ORIGINS = _get_list(os.getenv("ALLOWED_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

MIN_LEAD_TIME_MINUTES = _get_int(os.getenv("MIN_LEAD_TIME_MINUTES"), 60)
MIN_DURATION_MINUTES = _get_int(os.getenv("MIN_DURATION_MINUTES"), 15)
MAX_DURATION_MINUTES = _get_int(os.getenv("MAX_DURATION_MINUTES"), 480)

AVAILABILITY_CACHE_SECONDS = _get_int(os.getenv("AVAILABILITY_CACHE_SECONDS"), 300)
STORAGE_TIMEOUT_SECONDS = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "5"))

DEFAULT_WORKING_HOURS_START = os.getenv("DEFAULT_WORKING_HOURS_START", "09:00")
DEFAULT_WORKING_HOURS_END = os.getenv("DEFAULT_WORKING_HOURS_END", "17:00")

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if MIN_DURATION_MINUTES > MAX_DURATION_MINUTES:
        raise RuntimeError("MIN_DURATION_MINUTES must not exceed MAX_DURATION_MINUTES.")
