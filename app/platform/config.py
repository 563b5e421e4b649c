from pathlib import Path
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Waitroom API"
    ENVIRONMENT: Literal["development", "test", "production"] = "development"
    DEBUG: bool = False
    CORS_ORIGINS: List[str] = ["*"]

    # ── Database ────────────────────────────────
    DATABASE_URL: str

    # ── JWT / Auth ──────────────────────────────
    JWT_SECRET_KEY: str = "your-secret-key-change-this-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080  # 7 days
    ALGORITHM: str = "HS256"

    # ── Rate limiting ───────────────────────────
    REDIS_URL: Optional[str] = None
    FORCE_IN_MEMORY_RATE_LIMITER: bool = False
    RATE_LIMIT_MAX: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    WAITLIST_RATE_LIMIT_MAX: int = 5
    WAITLIST_RATE_LIMIT_WINDOW_SECONDS: int = 3600
    WHITELIST_IPS: List[str] = []

    # ── Email deliverability (Emailable) ────────
    EMAILABLE_API_KEY: Optional[str] = None
    EMAILABLE_API_URL: str = "https://api.emailable.com/v1/verify"
    EMAIL_VALIDATION_TIMEOUT: float = 10.0

    # ── Waitlist ────────────────────────────────
    INVITE_CODE_LENGTH: int = 8
    INVITE_CODE_MAX_ATTEMPTS: int = 5

    # ── Logging ─────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def rate_limit_rules(self) -> dict[str, tuple[int, int]]:
        """Path -> (max requests, window seconds). The "*" rule applies to every other path."""
        return {
            "/api/v1/waitlist/join": (
                self.WAITLIST_RATE_LIMIT_MAX,
                self.WAITLIST_RATE_LIMIT_WINDOW_SECONDS,
            ),
            "*": (self.RATE_LIMIT_MAX, self.RATE_LIMIT_WINDOW_SECONDS),
        }

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
