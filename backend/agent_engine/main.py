"""
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from agent_engine.api.routes import executions
from agent_engine.config import settings
from agent_engine.database import Base, engine
from agent_engine.logging_config import setup_logging
from agent_engine.workers.arq_config import close_redis_pool

import agent_engine.models  # noqa: F401  (register tables)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Create database tables (Alembic manages them in production)
    Base.metadata.create_all(bind=engine)
    logger.info(f"[API] {settings.PROJECT_NAME} ready")
    yield
    await close_redis_pool()


# Initialize FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
    version="1.0.0",
    description="Step-based execution engine for autonomous coding agents",
    lifespan=lifespan,
)

app.include_router(executions.router, prefix=settings.API_V1_PREFIX)


@app.get("/health")
def health():
    return {"status": "ok"}
