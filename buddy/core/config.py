import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database & Cache
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None
    REDIS_URL: Optional[str] = None

    # Persistence timeouts and optimistic concurrency
    STORE_TIMEOUT_SECONDS: float = 5.0
    CAS_MAX_ATTEMPTS: int = 3
    CAS_BACKOFF_BASE_SECONDS: float = 0.01

    # Rewards
    DAILY_ACTION_XP: int = 10
    GOAL_COMPLETION_XP: int = 25

    # Leaderboard
    LEADERBOARD_CACHE_TTL_SECONDS: int = 30  # 0 = disabled
    LEADERBOARD_MAX_PAGE_SIZE: int = 100

    # App URLs
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("buddy")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "REDIS_URL",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    problems = []
    if cfg.CAS_MAX_ATTEMPTS < 1:
        problems.append("CAS_MAX_ATTEMPTS must be >= 1")
    if cfg.STORE_TIMEOUT_SECONDS <= 0:
        problems.append("STORE_TIMEOUT_SECONDS must be > 0")
    if cfg.LEADERBOARD_MAX_PAGE_SIZE < 1:
        problems.append("LEADERBOARD_MAX_PAGE_SIZE must be >= 1")
    if problems:
        raise RuntimeError("; ".join(problems))

    return True
