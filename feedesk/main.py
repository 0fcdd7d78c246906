from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from feedesk.core.config import config
from feedesk.core.errors import register_exception_handlers
from feedesk.core.logging import init_logging
from feedesk.db.mongo import mongo_lifespan
from feedesk.features.audit.router import router as audit_router
from feedesk.features.commissions.router import router as commissions_router
from feedesk.features.commissions.store import commissions_lifespan

# Configure logging ON IMPORT so all subsequent module logs behave correctly.
init_logging(
    app_level="DEBUG" if config.debug else "INFO",
    environment=config.environment,
)


@asynccontextmanager
async def lifespan(application: FastAPI):
    # Store needs app.state.db, so Mongo opens first and closes last.
    async with mongo_lifespan(application), commissions_lifespan(application):
        yield


app = FastAPI(title=config.app_name, lifespan=lifespan)
register_exception_handlers(app)

app.include_router(commissions_router)
app.include_router(audit_router)


@app.get("/health")
async def health():
    return {"ok": True, "env": config.environment}
