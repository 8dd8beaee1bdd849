from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://localhost:3000")


@dataclass(frozen=True)
class DatabaseConfig:
    host: str
    port: int
    database: str
    user: str
    password: str

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class AppConfig:
    db_dsn: str
    auth_secret_key: str = ""
    auth_token_expiry_hours: int = 168
    internal_api_token: str = ""
    use_live_quotes: bool = True
    quote_cache_seconds: int = 60
    max_symbol_length: int = 20
    cors_origins: tuple[str, ...] = field(default=DEFAULT_CORS_ORIGINS)


def _database_dsn() -> str:
    """``DATABASE_URL``, else a DSN assembled from the libpq ``PG*`` variables."""
    url = os.environ.get("DATABASE_URL", "")
    if url or not os.environ.get("PGHOST"):
        return url
    return DatabaseConfig(
        host=os.environ["PGHOST"],
        port=int(os.environ.get("PGPORT", "5432")),
        database=os.environ.get("PGDATABASE", "journal"),
        user=os.environ.get("PGUSER", "journal"),
        password=os.environ.get("PGPASSWORD", ""),
    ).dsn


def load_config() -> AppConfig:
    """Load application config from environment variables.

    Loads .env file if present in the current directory.
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    origins = os.environ.get("CORS_ORIGINS", "")
    cors_origins = tuple(o.strip() for o in origins.split(",") if o.strip()) or DEFAULT_CORS_ORIGINS

    return AppConfig(
        db_dsn=_database_dsn(),
        auth_secret_key=os.environ.get("AUTH_SECRET_KEY", ""),
        auth_token_expiry_hours=int(os.environ.get("AUTH_TOKEN_EXPIRY_HOURS", "168")),
        internal_api_token=os.environ.get("INTERNAL_API_TOKEN", ""),
        use_live_quotes=os.environ.get("USE_LIVE_QUOTES", "true").lower() in ("1", "true", "yes"),
        quote_cache_seconds=int(os.environ.get("QUOTE_CACHE_SECONDS", "60")),
        max_symbol_length=int(os.environ.get("MAX_SYMBOL_LENGTH", "20")),
        cors_origins=cors_origins,
    )
