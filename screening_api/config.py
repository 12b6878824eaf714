"""
Application settings
Reads environment variables (and a local .env file) once per process
"""
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings:
    def __init__(self):
        self.APP_ENV = os.getenv("APP_ENV", "development")

        # Auth
        self.JWT_SECRET = os.getenv("JWT_SECRET", "")
        self.JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "") or self.JWT_SECRET
        self.JWT_ALGORITHM = "HS256"
        self.ACCESS_TOKEN_TTL_MINUTES = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", 4 * 60))
        self.REFRESH_TOKEN_TTL_DAYS = int(os.getenv("REFRESH_TOKEN_TTL_DAYS", 30))
        self.COOKIE_SECURE = _env_bool("COOKIE_SECURE", self.is_production)

        # Credential store
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./screening_users.db")
        self.ADMIN_SEED_EMAIL = os.getenv("ADMIN_SEED_EMAIL", "")
        self.ADMIN_SEED_PASSWORD = os.getenv("ADMIN_SEED_PASSWORD", "")

        # AWS
        self.AWS_REGION = os.getenv("AWS_REGION") or os.getenv("APP_AWS_REGION", "us-east-1")
        self.AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
        self.AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
        self.SUBMISSIONS_TABLE = os.getenv("SUBMISSIONS_TABLE", "health-screening-submissions")
        self.LOCATIONS_TABLE = os.getenv("LOCATIONS_TABLE", "health-screening-churches")
        self.RATE_LIMIT_TABLE = os.getenv("RATE_LIMIT_TABLE", "health-screening-rate-limits")
        self.SUBMISSIONS_GSI_CHURCH_DATE: Optional[str] = os.getenv("SUBMISSIONS_GSI_CHURCH_DATE") or None
        self.S3_BUCKET = os.getenv("S3_BUCKET", "health-screening-photos")

        # Facial analysis vendor
        self.ANALYSIS_API_BASE_URL = os.getenv("ANALYSIS_API_BASE_URL", "https://api.arya.ai")
        self.ANALYSIS_API_KEY = os.getenv("ANALYSIS_API_KEY", "")
        self.ANALYSIS_TIMEOUT_SECONDS = float(os.getenv("ANALYSIS_TIMEOUT_SECONDS", 30))

        # SMS
        self.SNS_ENABLED = _env_bool("SNS_ENABLED", False)
        self.SNS_SENDER_ID = os.getenv("SNS_SENDER_ID", "HealthCheck")

        # Misc
        self.PUBLIC_FORM_BASE_URL = os.getenv("PUBLIC_FORM_BASE_URL", "http://localhost:3000").rstrip("/")
        self.RATE_LIMIT_BACKEND = os.getenv("RATE_LIMIT_BACKEND", "memory")
        self.CORS_ORIGINS = _env_list("CORS_ORIGINS", "*")

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    def jwt_secret(self) -> str:
        if self.JWT_SECRET:
            return self.JWT_SECRET
        if self.is_production:
            raise RuntimeError("JWT_SECRET environment variable is required")
        return "dev-only-secret"

    def jwt_refresh_secret(self) -> str:
        return self.JWT_REFRESH_SECRET or self.jwt_secret()


@lru_cache()
def get_settings() -> Settings:
    return Settings()
