import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

LDAP_ENABLED = _get_bool(os.getenv("LDAP_ENABLED"), default=True)
LDAP_URL = os.getenv("LDAP_URL", "ldap://ldap-rr.fbi.h-da.de:389")
LDAP_SEARCH_BASE = os.getenv("LDAP_SEARCH_BASE", "ou=people,ou=Students,dc=fbi,dc=h-da,dc=de")
LDAP_CONNECT_TIMEOUT = int(os.getenv("LDAP_CONNECT_TIMEOUT", "10"))

UPLOADS_DIR = os.getenv("UPLOADS_DIR", "uploads")
USER_UPLOADS_DIR = os.getenv("USER_UPLOADS_DIR", os.path.join(UPLOADS_DIR, "users"))
MAX_PROFILE_IMAGE_WIDTH = int(os.getenv("MAX_PROFILE_IMAGE_WIDTH", "512"))
MAX_PROFILE_IMAGE_HEIGHT = int(os.getenv("MAX_PROFILE_IMAGE_HEIGHT", "512"))

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
