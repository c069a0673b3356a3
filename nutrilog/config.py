"""
Configuration management for Nutrilog
"""
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Nutrilog"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str

    # Civil timezone used for every day/week boundary
    REFERENCE_TIMEZONE: str = "Asia/Taipei"

    # Catalog sync
    SYNC_TOKEN: str = ""  # empty disables POST /sync
    CATALOG_CSV_PATH: str = "data/food_data.csv"
    SYNC_BATCH_SIZE: int = 50

    # Identity delivered by the ingress proxy
    USER_ID_HEADER: str = "X-User-Id"

    # Records
    FUTURE_ALLOWANCE_SECONDS: int = 300  # tolerated client clock skew

    # Goals
    DEFAULT_DAILY_CALORIE_GOAL: int = 1750
    DEFAULT_DAILY_PROTEIN_GOAL: float = 100.0

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("REFERENCE_TIMEZONE")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @field_validator("SYNC_BATCH_SIZE")
    @classmethod
    def _check_batch_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("SYNC_BATCH_SIZE must be positive")
        return value


@lru_cache()
def get_settings() -> Settings:
    return Settings()
