# feedesk/db/mongo.py
"""
MongoDB connection + FastAPI dependency.

- One Motor client per process, opened in the app lifespan and kept on app.state.
- Indexes are ensured on startup (idempotent).
- If transactions are enabled but the server is a standalone mongod, we say so
  at startup instead of failing on the first global commission change.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timezone
from typing import Any, Dict, List, Tuple

from fastapi import FastAPI, Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure, PyMongoError

from feedesk.core.config import config

logger = logging.getLogger(__name__)

# (collection, keys, options)
INDEXES: Tuple[Tuple[str, List[Tuple[str, int]], Dict[str, Any]], ...] = (
    ("users", [("id", ASCENDING)], {"unique": True, "name": "uniq_users_id"}),
    ("user_settings", [("user_id", ASCENDING)], {"unique": True, "name": "uniq_user_settings_user_id"}),
    # One document per global setting key; the versioned upsert relies on this.
    ("global_settings", [("key", ASCENDING)], {"unique": True, "name": "uniq_global_settings_key"}),
    ("admin_logs", [("created_at", DESCENDING)], {"name": "idx_admin_logs_created_at"}),
    (
        "admin_logs",
        [("client_id", ASCENDING), ("created_at", DESCENDING)],
        {"name": "idx_admin_logs_client_created_at"},
    ),
)


async def _ensure_index(col, keys, **kwargs) -> None:
    """
    Create an index if it doesn't exist.

    Code 85 (IndexOptionsConflict) means the same keys are already indexed
    under another name; that index is kept.
    """
    try:
        await col.create_index(keys, **kwargs)
    except OperationFailure as e:
        if getattr(e, "code", None) != 85:
            raise
        logger.warning("Index conflict on %s keys=%s name=%s; keeping existing index", col.name, keys, kwargs.get("name"))


async def _warn_if_transactions_unsupported(client: AsyncIOMotorClient) -> None:
    try:
        hello = await client.admin.command("hello")
    except PyMongoError as exc:
        logger.warning("Could not check transaction support: %s", exc)
        return

    if not hello.get("setName") and hello.get("msg") != "isdbgrid":
        logger.warning(
            "MONGO_TRANSACTIONS is on but %s is a standalone server; "
            "global commission changes will fail. Set MONGO_TRANSACTIONS=false.",
            config.mongo_uri,
        )


@asynccontextmanager
async def mongo_lifespan(fastapi_app: FastAPI):
    client = AsyncIOMotorClient(config.mongo_uri, tz_aware=True, tzinfo=timezone.utc)
    db = client[config.mongo_db]
    logger.info("Mongo connected: uri=%s db=%s transactions=%s", config.mongo_uri, db.name, config.mongo_transactions)

    state = getattr(fastapi_app, "state")
    setattr(state, "mongo_client", client)
    setattr(state, "db", db)

    for collection, keys, options in INDEXES:
        await _ensure_index(db[collection], keys, **options)

    if config.mongo_transactions:
        await _warn_if_transactions_unsupported(client)

    try:
        yield
    finally:
        client.close()


async def get_db(request: Request) -> AsyncIOMotorDatabase:
    return request.app.state.db
