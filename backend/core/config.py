import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


FHIR_SERVER_BASE = os.getenv("FHIR_SERVER_BASE", "http://localhost:8080/fhir").rstrip("/")
FHIR_TIMEOUT_SECONDS = float(os.getenv("FHIR_TIMEOUT_SECONDS", "10"))
FHIR_VERIFY_TLS = _get_bool(os.getenv("FHIR_VERIFY_TLS"), default=True)
FHIR_MAX_SEARCH_PAGES = int(os.getenv("FHIR_MAX_SEARCH_PAGES", "20"))

PERSON_IDENTIFIER_SYSTEM = os.getenv("PERSON_IDENTIFIER_SYSTEM", "http://example.org/fhir/person")
EMAIL_IDENTIFIER_SYSTEM = os.getenv("EMAIL_IDENTIFIER_SYSTEM", "http://example.org/fhir/email")

ORGANIZATION_NAME_FILTER = os.getenv("ORGANIZATION_NAME_FILTER", "")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))
AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "token")

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:4200"])

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not FHIR_SERVER_BASE.startswith(("http://", "https://")):
        raise RuntimeError("FHIR_SERVER_BASE must be an http(s) URL.")
