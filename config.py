"""Application settings.

Values come from the process environment (and a local .env file when
present). `create_app` turns a `Config` into Flask config keys.
"""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

BASEDIR = Path(__file__).parent.resolve()
DATA_DIR = BASEDIR / "data"

STORAGE_BACKENDS = ("sql", "memory")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Settings for one application instance."""

    SECRET_KEY: str = "dev-secret-change-me"
    DATABASE_URL: str = f"sqlite:///{DATA_DIR / 'movies.sqlite3'}"
    STORAGE_BACKEND: str = "sql"
    CHANGE_FEED_ENABLED: bool = True
    SEED_SAMPLE_MOVIES: bool = False
    DB_CONNECT_RETRIES: int = 5
    DB_RETRY_DELAY: float = 5.0
    LOG_LEVEL: str = "INFO"
    TESTING: bool = False

    @classmethod
    def from_env(cls) -> "Config":
        """Build a Config from environment variables."""
        load_dotenv()  # Load environment variables from .env if present

        return cls(
            SECRET_KEY=os.getenv("SECRET_KEY", cls.SECRET_KEY),
            DATABASE_URL=os.getenv("DATABASE_URL", cls.DATABASE_URL),
            STORAGE_BACKEND=os.getenv("STORAGE_BACKEND", cls.STORAGE_BACKEND).strip().lower(),
            CHANGE_FEED_ENABLED=_env_flag("CHANGE_FEED_ENABLED", "1"),
            SEED_SAMPLE_MOVIES=_env_flag("SEED_SAMPLE_MOVIES", "0"),
            DB_CONNECT_RETRIES=int(os.getenv("DB_CONNECT_RETRIES", "5")),
            DB_RETRY_DELAY=float(os.getenv("DB_RETRY_DELAY", "5")),
            LOG_LEVEL=os.getenv("LOG_LEVEL", cls.LOG_LEVEL).upper(),
        )

    def with_overrides(self, overrides: Optional[Mapping[str, Any]]) -> "Config":
        """Return a copy with any matching keys from `overrides` replaced."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in overrides.items() if k in known})

    def to_flask(self) -> Dict[str, Any]:
        """Return the settings as a dict suitable for `app.config.update`."""
        if self.STORAGE_BACKEND not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unknown STORAGE_BACKEND {self.STORAGE_BACKEND!r}; "
                f"expected one of {', '.join(STORAGE_BACKENDS)}."
            )
        settings = asdict(self)
        settings["SQLALCHEMY_DATABASE_URI"] = self.DATABASE_URL
        settings["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
        return settings
