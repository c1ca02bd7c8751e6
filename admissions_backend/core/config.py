import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGIN = os.getenv("CORS_ORIGIN", "http://localhost:4200")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Whether cancelling (or otherwise deactivating) an appointment gives its
# schedule slot back. Off by default: capacity is consumed on booking only.
FREE_CAPACITY_ON_CANCEL = _get_bool(os.getenv("FREE_CAPACITY_ON_CANCEL"), default=False)

DEFAULT_MAX_APPOINTMENTS = int(os.getenv("DEFAULT_MAX_APPOINTMENTS", "10"))
MAX_SCHEDULE_NOTES_LENGTH = int(os.getenv("MAX_SCHEDULE_NOTES_LENGTH", "500"))
MAX_APPOINTMENT_NOTES_LENGTH = int(os.getenv("MAX_APPOINTMENT_NOTES_LENGTH", "1000"))

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
