"""Duet: FastAPI entrypoint (calendar integration, availability, health check)."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from api.availability import router as availability_router
from api.integrations import router as integrations_router
from api.oauth import router as oauth_router
from duet.core.config import settings
from duet.core.db import async_session, engine

logging.basicConfig(level=getattr(logging, settings.log_level))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Duet (%s)...", settings.app_env)
    if not settings.google_client_id:
        logger.warning("GOOGLE_CLIENT_ID is not set; calendar connect will fail")

    yield

    await engine.dispose()
    logger.info("Shutting down Duet...")


app = FastAPI(title="Duet", lifespan=lifespan)

app.include_router(oauth_router)
app.include_router(integrations_router)
app.include_router(availability_router)


@app.get("/health")
async def health():
    checks = {"api": "ok"}
    try:
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        logger.exception("Health check: database unreachable")
        checks["database"] = "error"
    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
    return {"status": status, **checks}
