# feedesk/core/config.py
"""
Process-wide settings, read from the environment (and a local .env in dev).

Commission values are NOT configured here: they live in MongoDB
(global_settings + user_settings) and are edited through the admin API.
"""
from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


class AppConfig(BaseModel):
    """Defaults below apply when the matching env var is unset."""

    # ---- app ----
    app_name: str = "Commission Settings Backend"
    environment: str = os.getenv("APP_ENV", "dev")  # dev / staging / prod
    debug: bool = _env_bool("DEBUG", True)

    # ---- MongoDB ----
    mongo_uri: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    mongo_db: str = os.getenv("MONGO_DB", "feedesk")

    # Multi-document transactions need a replica set (or mongos).
    # On a standalone dev server set MONGO_TRANSACTIONS=false; global commission
    # changes then fall back to a compensating rollback.
    mongo_transactions: bool = _env_bool("MONGO_TRANSACTIONS", True)

    # ---- commissions cache ----
    # With REDIS_URL set, all workers share one cache and see each other's
    # invalidations. Without it each process keeps its own in-memory cache,
    # which is only correct with a single worker.
    redis_url: str | None = os.getenv("REDIS_URL")

    # 36,000,000 s (~416 days): entries effectively live until a write deletes them.
    commissions_cache_ttl_seconds: int = int(os.getenv("COMMISSIONS_CACHE_TTL_SECONDS", "36000000"))

    cache_key_prefix: str = os.getenv("CACHE_KEY_PREFIX", "feedesk:")


config = AppConfig()
