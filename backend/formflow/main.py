"""FastAPI application entry point."""

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from formflow.db.database import close_database, init_database

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown."""
    db_path = os.getenv("DATABASE_PATH", "./data/formflow.db")
    await init_database(db_path)
    logger.info(f"Database ready at {db_path}")

    yield

    await close_database()


app = FastAPI(
    title="formflow",
    description="Forms, relation fields, workflow graphs and task tracking",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware - any localhost port by default
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=os.getenv("CORS_ORIGIN_REGEX", r"^http://localhost(:\d+)?$"),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


# Import and include routers after app is created to avoid circular imports
from formflow.api import forms, tasks, workflows  # noqa: E402

app.include_router(forms.router, prefix="/api/v1", tags=["forms"])
app.include_router(workflows.router, prefix="/api/v1", tags=["workflows"])
app.include_router(tasks.router, prefix="/api/v1", tags=["tasks"])
