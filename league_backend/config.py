"""
Runtime settings, read from the environment.
"""
from __future__ import annotations

import os
from pathlib import Path


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r})")


DB_PATH = Path(os.environ.get("LEAGUE_DB_PATH", str(_project_root() / "data" / "league.db")))
DB_BUSY_TIMEOUT_MS = _env_int("LEAGUE_DB_BUSY_TIMEOUT_MS", 5000)

SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "league-dev-secret-change-in-production")
ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)

# Roster cap when a championship has no max_enabled_players override
DEFAULT_MAX_ENABLED_PLAYERS = _env_int("DEFAULT_MAX_ENABLED_PLAYERS", 20)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Request keys older than this are forgotten; a replay after that runs the call again
IDEMPOTENCY_KEY_RETENTION_DAYS = _env_int("IDEMPOTENCY_KEY_RETENTION_DAYS", 30)
