import json

from pathlib import Path
from typing import Annotated

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


# Resolve project root regardless of current working directory
BASE_DIR = Path(__file__).resolve().parents[2]
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "CampusVerse Quiz Service"
    ENV: str = "dev"
    # One origin or many, comma separated or as a JSON list.
    # Example: "http://localhost:5173,https://campus.example.com"
    BACKEND_CORS_ORIGINS: Annotated[list[str], NoDecode] = ["http://localhost:5173"]

    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'campusverse.db'}"
    SQL_ECHO: bool = False

    LOG_LEVEL: str = "INFO"

    # ===== Optional auth (default: demo headers X-User-Id / X-User-Role) =====
    AUTH_ENABLED: bool = False
    JWT_SECRET_KEY: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"

    # ===== Quiz lifecycle =====
    QUIZ_CODE_LENGTH: int = 6
    QUIZ_CODE_MAX_TRIES: int = 20
    # Submissions arriving this long after a session deadline are flagged late.
    QUIZ_SUBMIT_GRACE_SECONDS: int = 30

    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # ===== AI credit ledger =====
    AI_DEFAULT_CREDITS: int = 100
    AI_ROADMAP_COST: int = 15

    # Creates one faculty, a few students and a course on startup.
    SEED_DEMO_DATA: bool = False

    # ===== Quiz-taking client =====
    CLIENT_SUBMIT_MAX_RETRIES: int = 3
    CLIENT_SUBMIT_BACKOFF_SEC: float = 1.0
    CLIENT_HTTP_TIMEOUT_SEC: float = 10.0

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if v is None or v == "":
            return []

        if isinstance(v, list):
            return v

        # JSON list first, fall back to comma separated
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                try:
                    return json.loads(s)
                except Exception:
                    pass
            return [item.strip() for item in s.split(",") if item.strip()]

        return v

    @model_validator(mode="after")
    def _check_quiz_knobs(self):
        if self.QUIZ_CODE_LENGTH < 4:
            raise ValueError("QUIZ_CODE_LENGTH must be at least 4")
        if self.MAX_PAGE_SIZE < self.DEFAULT_PAGE_SIZE:
            self.MAX_PAGE_SIZE = self.DEFAULT_PAGE_SIZE
        return self


settings = Settings()
