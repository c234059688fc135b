# bankfeed/config.py
# Role: Runtime settings for the banking engine.
#       Loads .env (if present) and exposes a frozen Settings object built
#       from environment variables.

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

# Project root (one level above this package)
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Default on-disk location for the SQLite database
DEFAULT_DB_PATH = os.path.join(BASE_DIR, "database", "bankfeed.db")


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip().lower().lstrip(".") for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    app_env: str
    database_url: str
    log_level: str
    max_upload_mb: int
    allowed_extensions: list[str]
    import_max_errors: int
    auto_categorize: bool

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


def load_settings() -> Settings:
    return Settings(
        app_env=os.getenv("APP_ENV", "development"),
        database_url=os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        max_upload_mb=int(os.getenv("MAX_UPLOAD_MB", "10")),
        allowed_extensions=_parse_csv(
            os.getenv("ALLOWED_EXTENSIONS", "csv,xlsx,xls,html,htm,txt,pdf")
        ),
        import_max_errors=int(os.getenv("IMPORT_MAX_ERRORS", "20")),
        auto_categorize=_parse_bool(os.getenv("AUTO_CATEGORIZE"), True),
    )


settings = load_settings()
