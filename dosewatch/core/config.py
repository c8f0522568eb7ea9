import json
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from urllib.parse import quote_plus
from enum import Enum


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    # Environment Configuration
    ENVIRONMENT: Environment = Environment.DEVELOPMENT

    # Project Information
    PROJECT_NAME: str = "DoseWatch"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"

    # Server settings
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # Database - PostgreSQL when POSTGRES_* are set, SQLite otherwise
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_PORT: Optional[int] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    # Security
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    REQUIRE_API_KEY: bool = True
    VALID_API_KEYS: str = ""  # comma-separated or JSON list

    # Email (SMTP)
    SMTP_SERVER: Optional[str] = None  # SMTP server (e.g., smtp.zoho.in)
    SMTP_PORT: Optional[str] = None  # SMTP port (e.g., 587)
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    FROM_EMAIL: Optional[str] = None
    SMTP_TIMEOUT_SECONDS: int = 30

    # Timezone used for user-facing timestamps (storage is always UTC-naive)
    DISPLAY_TIMEZONE: str = "America/Bogota"

    # Logging
    LOG_LEVEL: str = "INFO"

    # --- Validators & Derived Settings ---
    @property
    def api_keys(self) -> List[str]:
        raw = (self.VALID_API_KEYS or "").strip()
        if raw.startswith("["):
            try:
                return [str(k) for k in json.loads(raw)]
            except (json.JSONDecodeError, TypeError):
                pass
        return [key.strip() for key in raw.strip("[]").split(",") if key.strip()]

    @model_validator(mode="after")
    def _finalize_and_validate(self) -> "Settings":
        # Derive SQLALCHEMY_DATABASE_URI if not provided
        if not self.SQLALCHEMY_DATABASE_URI:
            user = self.POSTGRES_USER
            server = self.POSTGRES_SERVER
            port = self.POSTGRES_PORT
            db = self.POSTGRES_DB
            if user and server and port and db:
                safe_user = quote_plus(user)
                if self.POSTGRES_PASSWORD:
                    safe_password = quote_plus(self.POSTGRES_PASSWORD)
                    self.SQLALCHEMY_DATABASE_URI = (
                        f"postgresql://{safe_user}:{safe_password}@{server}:{port}/{db}"
                    )
                else:
                    self.SQLALCHEMY_DATABASE_URI = (
                        f"postgresql://{safe_user}@{server}:{port}/{db}"
                    )
            else:
                self.SQLALCHEMY_DATABASE_URI = "sqlite:///./dosewatch.db"

        if self.ENVIRONMENT == Environment.PRODUCTION:
            if self.SECRET_KEY == "change-me":
                raise ValueError("SECRET_KEY must be set in production")
            if not self.SMTP_SERVER or not self.FROM_EMAIL:
                raise ValueError("SMTP_SERVER and FROM_EMAIL are required in production")

        return self

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra='ignore')


settings = Settings()
