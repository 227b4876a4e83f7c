# triviatitans/settings.py
from __future__ import annotations

from pydantic import BaseModel
import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "y", "on")


class Settings(BaseModel):
    APP_NAME: str = "trivia-titans"

    # Redis (document store)
    REDIS_URL: str = "redis://localhost:6379/0"
    TX_MAX_RETRIES: int = 5
    INDIVIDUAL_SESSION_TTL_SEC: int = 86400

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = ""  # "" (auto) | "json" | "pretty"

    # WebSocket origin policy (comma-separated)
    WS_ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000,null"
    # Dev helper: allow any private LAN IP on port 3000
    WS_ALLOW_LAN_ORIGINS: bool = True

    # Game defaults
    GRID_SIZE: int = 22
    DEFAULT_TIMER_SEC: int = 300
    DEFAULT_TOPIC: str = "General Knowledge"
    DEFAULT_TEAM_CAPACITY: int = 10
    START_COUNTDOWN_SEC: int = 5

    # Question generation
    QUESTION_SERVICE_URL: str = "http://localhost:8100/generate"
    QUESTION_SERVICE_TIMEOUT_SEC: float = 30.0
    QUESTION_POOL_SIZE: int = 20

    # Client-side pacing
    NOT_FOUND_WAIT_SEC: float = 3.0
    FEEDBACK_SEC: float = 2.0
    COLORING_SEC: float = 15.0
    CLOCK_TICK_SEC: float = 1.0


def get_settings() -> Settings:
    return Settings(
        APP_NAME=os.getenv("APP_NAME", "trivia-titans"),
        REDIS_URL=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        TX_MAX_RETRIES=int(os.getenv("TX_MAX_RETRIES", "5")),
        INDIVIDUAL_SESSION_TTL_SEC=int(os.getenv("INDIVIDUAL_SESSION_TTL_SEC", "86400")),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=int(os.getenv("PORT", "8000")),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        LOG_FORMAT=os.getenv("LOG_FORMAT", "").lower(),

        WS_ALLOWED_ORIGINS=os.getenv(
            "WS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,null",
        ),
        WS_ALLOW_LAN_ORIGINS=_env_bool("WS_ALLOW_LAN_ORIGINS", "true"),

        GRID_SIZE=int(os.getenv("GRID_SIZE", "22")),
        DEFAULT_TIMER_SEC=int(os.getenv("DEFAULT_TIMER_SEC", "300")),
        DEFAULT_TOPIC=os.getenv("DEFAULT_TOPIC", "General Knowledge"),
        DEFAULT_TEAM_CAPACITY=int(os.getenv("DEFAULT_TEAM_CAPACITY", "10")),
        START_COUNTDOWN_SEC=int(os.getenv("START_COUNTDOWN_SEC", "5")),

        QUESTION_SERVICE_URL=os.getenv("QUESTION_SERVICE_URL", "http://localhost:8100/generate"),
        QUESTION_SERVICE_TIMEOUT_SEC=float(os.getenv("QUESTION_SERVICE_TIMEOUT_SEC", "30")),
        QUESTION_POOL_SIZE=int(os.getenv("QUESTION_POOL_SIZE", "20")),

        NOT_FOUND_WAIT_SEC=float(os.getenv("NOT_FOUND_WAIT_SEC", "3")),
        FEEDBACK_SEC=float(os.getenv("FEEDBACK_SEC", "2")),
        COLORING_SEC=float(os.getenv("COLORING_SEC", "15")),
        CLOCK_TICK_SEC=float(os.getenv("CLOCK_TICK_SEC", "1")),
    )
