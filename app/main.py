"""
FastAPI application entrypoint.

Run locally:  uvicorn app.main:app --reload
"""

import logging

from fastapi import FastAPI

from app.api.errors import register_error_handlers
from app.api.routes import router
from app.config import settings
from app.models.database import Base, engine
from app.models.document import Document  # noqa: F401  (registers the table)

logging.basicConfig(
    level=settings.LOG_LEVEL, format="%(levelname)s | %(name)s | %(message)s"
)

app = FastAPI(
    title="Medical Testing Registry API",
    description=(
        "Registry of examination results, health facilities (LPU), "
        "population contingents and operators, with soft-deleted history."
    ),
    version="1.0.0",
)

app.include_router(router, prefix="/api/v1")
register_error_handlers(app)


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
