# app/core/config.py
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SECRET_KEY: str = "your-super-secret-jwt-key-change-in-prod"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080  # 7 days

    DATABASE_URL: str = "sqlite:///./exam_access.db"

    # Recurring windows are evaluated against "today" in this zone
    EXAM_TIMEZONE: str = "Asia/Kolkata"

    GUARDIAN_ENABLED: bool = True
    GUARDIAN_INTERVAL_SECONDS: float = 60.0
    GUARDIAN_STARTUP_DELAY_SECONDS: float = 5.0
    EXPIRY_GRACE_SECONDS: int = 30

    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: List[str] = [
        "http://localhost",
        "http://127.0.0.1",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8000",
    ]

    class Config:
        env_file = ".env"


# Created once
settings = Settings()
