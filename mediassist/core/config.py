from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings
from typing import Optional, List
from datetime import datetime, time, timedelta, timezone
import os

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "MediAssist Core"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    TESTING: bool = os.getenv("TESTING", "0").lower() in ("1", "true", "t", "yes", "y")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./mediassist.db")
    TEST_DATABASE_URL: str = os.getenv("TEST_DATABASE_URL", "sqlite:///./mediassist_test.db")

    # Redis (rate limiting)
    REDIS_URL: str = "redis://localhost:6379"
    RATE_LIMIT_MAX_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 3600

    # Sessions
    SESSION_TTL_HOURS: int = 24
    SESSION_RETENTION_HOURS: int = 72
    BCRYPT_ROUNDS: int = 12

    # Credential verifier
    CREDENTIAL_VERIFIER_URL: Optional[str] = None
    CREDENTIAL_VERIFY_TIMEOUT_SECONDS: float = 5.0
    UPSTREAM_RETRY_BACKOFF_SECONDS: float = 0.5
    CREDENTIAL_VERIFIER_WORKERS: int = 8

    # Scheduling
    WORK_DAY_START: str = "09:00"
    WORK_DAY_END: str = "17:00"
    SLOT_GRANULARITY_MINUTES: int = 30
    DEFAULT_APPOINTMENT_MINUTES: int = 30
    CLINIC_UTC_OFFSET_MINUTES: int = 0

    # CORS / hosts
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8080", "http://testserver"]
    ALLOWED_HOSTS: List[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    @field_validator("WORK_DAY_START", "WORK_DAY_END")
    @classmethod
    def validate_clock_time(cls, value: str) -> str:
        datetime.strptime(value, "%H:%M")
        return value

    @field_validator(
        "SLOT_GRANULARITY_MINUTES", "DEFAULT_APPOINTMENT_MINUTES",
        "SESSION_TTL_HOURS", "RATE_LIMIT_MAX_REQUESTS", "RATE_LIMIT_WINDOW_SECONDS",
        "CREDENTIAL_VERIFY_TIMEOUT_SECONDS", "CREDENTIAL_VERIFIER_WORKERS"
    )
    @classmethod
    def validate_positive(cls, value):
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("SESSION_RETENTION_HOURS", "UPSTREAM_RETRY_BACKOFF_SECONDS")
    @classmethod
    def validate_non_negative(cls, value):
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @model_validator(mode="after")
    def validate_work_day(self):
        if self.work_day_start >= self.work_day_end:
            raise ValueError("WORK_DAY_START must be before WORK_DAY_END")
        return self

    @property
    def get_database_url(self):
        """Return the appropriate database URL based on if we're testing"""
        if self.TESTING:
            return self.TEST_DATABASE_URL
        return self.DATABASE_URL

    @property
    def work_day_start(self) -> time:
        return datetime.strptime(self.WORK_DAY_START, "%H:%M").time()

    @property
    def work_day_end(self) -> time:
        return datetime.strptime(self.WORK_DAY_END, "%H:%M").time()

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.SESSION_TTL_HOURS)

    @property
    def session_retention(self) -> timedelta:
        return timedelta(hours=self.SESSION_RETENTION_HOURS)

    @property
    def clinic_timezone(self) -> timezone:
        return timezone(timedelta(minutes=self.CLINIC_UTC_OFFSET_MINUTES))

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()
