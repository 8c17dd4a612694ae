from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/tasks.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - ENABLE_TOKEN_AUTH: 'true' to require signed bearer tokens (default: false)
    - AUTH_TOKEN_SECRET: HMAC secret for bearer tokens (required when ENABLE_TOKEN_AUTH=true)
    - AUTH_TOKEN_TTL_SECONDS: lifetime of issued tokens. Default 43200
    - LOG_LEVEL: root log level. Default 'INFO'
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    enable_token_auth: bool
    auth_token_secret: Optional[str]
    auth_token_ttl_seconds: int
    log_level: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/tasks.db").strip()
    origins = _parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*"))

    enable_token_auth = _parse_bool(_get_env("ENABLE_TOKEN_AUTH", "false"), False)
    secret = os.getenv("AUTH_TOKEN_SECRET") if enable_token_auth else None
    ttl = _parse_int(_get_env("AUTH_TOKEN_TTL_SECONDS", "43200"), 43200)

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        enable_token_auth=enable_token_auth,
        auth_token_secret=secret,
        auth_token_ttl_seconds=max(ttl, 1),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
    )
