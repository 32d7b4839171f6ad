"""Configuration for KeepInTouch."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_DB_PATH = Path.home() / ".keepintouch" / "keepintouch.db"


@dataclass
class Settings:
    """Runtime settings, passed explicitly into the app and the CLI."""

    db_path: Path = DEFAULT_DB_PATH
    jwt_secret: str = "dev-secret-change-me"
    reset_token_secret: str = "dev-reset-secret-change-me"
    access_token_days: int = 7
    reset_token_minutes: int = 60
    frontend_url: str = "http://localhost:5173"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the environment (and a .env file if present)."""
        load_dotenv()
        defaults = cls()
        origins = os.environ.get("CORS_ORIGINS")
        return cls(
            db_path=Path(os.environ.get("KEEPINTOUCH_DB", str(defaults.db_path))),
            jwt_secret=os.environ.get("JWT_SECRET", defaults.jwt_secret),
            reset_token_secret=os.environ.get("RESET_TOKEN_SECRET", defaults.reset_token_secret),
            access_token_days=int(os.environ.get("ACCESS_TOKEN_DAYS", defaults.access_token_days)),
            reset_token_minutes=int(
                os.environ.get("RESET_TOKEN_MINUTES", defaults.reset_token_minutes)
            ),
            frontend_url=os.environ.get("FRONTEND_URL", defaults.frontend_url),
            cors_origins=(
                [o.strip() for o in origins.split(",") if o.strip()]
                if origins
                else defaults.cors_origins
            ),
        )
