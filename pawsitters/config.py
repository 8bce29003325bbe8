"""
Configuration Module
Settings are read from the environment once and passed around explicitly.
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Process settings for the PawSitters core"""

    database_url: str = "sqlite+aiosqlite:///./pawsitters.db"
    sql_echo: bool = False
    log_level: str = "INFO"
    log_file: str | None = None
    json_logs: bool = False
    allowed_origins: tuple[str, ...] = field(default_factory=lambda: ("http://localhost:3000",))

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            sql_echo=_env_flag("SQL_ECHO"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE") or None,
            json_logs=_env_flag("JSON_LOGS"),
            allowed_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for the running process (read once)."""
    return Settings.from_env()
