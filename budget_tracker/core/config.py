from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path


class Settings(BaseSettings):
    # Database - local SQLite file by default, override with environment variable for production
    DATABASE_URL: str = "sqlite:///./budget_tracker.db"

    # App Settings
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    # Budget engine
    RECOMPUTE_DEBOUNCE_MS: int = 300
    RECOMPUTE_COOLDOWN_MS: int = 1000
    NEAR_LIMIT_PERCENT: float = 80.0

    # Time zone used to decide which budgets are in their period "today"
    TIMEZONE: str = "UTC"

    class Config:
        # Use absolute path to .env file
        env_file = Path(__file__).parent.parent.parent / ".env"
        env_file_encoding = 'utf-8'


settings = Settings()
