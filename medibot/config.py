# medibot/config.py
import re
from functools import lru_cache
from typing import List, Optional, Union

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

RATE_LIMIT_PATTERN = re.compile(r"^\d+\s*/\s*(second|minute|hour|day)s?$")
DEFAULT_ORIGINS = ["http://localhost:3000"]


class Settings(BaseSettings):
    """MEDIBOT settings, read from the environment and an optional .env file"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)

    app_name: str = "MEDIBOT Telehealth API"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Storage
    database_url: str = Field(..., alias="DATABASE_URL")
    database_pool_size: int = Field(default=10, alias="DATABASE_POOL_SIZE")

    # Access tokens come from the external auth provider and are only verified here
    secret_key: str = Field(..., alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    cors_origins: Union[str, List[str]] = Field(default=DEFAULT_ORIGINS, alias="CORS_ORIGINS")

    # Appointment emails
    sendgrid_api_key: Optional[str] = Field(default=None, alias="SENDGRID_API_KEY")
    sender_email: str = Field(default="noreply@medibot.com", alias="SENDER_EMAIL")
    dashboard_url: str = Field(default="http://localhost:3000", alias="DASHBOARD_URL")

    meeting_base_url: str = Field(default="https://medibot-meet.com", alias="MEETING_BASE_URL")

    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    booking_rate_limit: str = Field(default="5/minute", alias="BOOKING_RATE_LIMIT")

    seed_demo_data: bool = Field(default=False, alias="SEED_DEMO_DATA")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        if isinstance(v, str):
            origins = [origin.strip() for origin in v.split(",") if origin.strip()]
            return origins or DEFAULT_ORIGINS
        return v

    @field_validator("database_url")
    @classmethod
    def check_database_url(cls, v):
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite:///")):
            raise ValueError("DATABASE_URL must point at PostgreSQL or SQLite")
        return v

    @field_validator("secret_key")
    @classmethod
    def check_secret_length(cls, v):
        if len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator("meeting_base_url", "dashboard_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    @field_validator("booking_rate_limit")
    @classmethod
    def check_rate_limit(cls, v):
        if not RATE_LIMIT_PATTERN.match(v.strip()):
            raise ValueError("BOOKING_RATE_LIMIT must look like '5/minute'")
        return v.strip()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def email_enabled(self) -> bool:
        return bool(self.sendgrid_api_key)


@lru_cache()
def get_settings() -> Settings:
    return Settings()


class DevelopmentConfig(Settings):
    debug: bool = True
    environment: str = "development"
    seed_demo_data: bool = True


class ProductionConfig(Settings):
    debug: bool = False
    environment: str = "production"
    log_json: bool = True


class TestingConfig(Settings):
    debug: bool = True
    environment: str = "testing"
    rate_limit_enabled: bool = False


def get_config_by_env(env: str) -> Settings:
    """Settings class for an ENVIRONMENT name; unknown names get the base class"""
    configs = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig,
    }
    return configs.get(env.lower(), Settings)()
