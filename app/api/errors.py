"""Translation of record store failures into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.store.errors import (
    KeyExhaustion,
    NaturalKeyConflict,
    StoreUnavailable,
    ValidationFailure,
    WriteConflict,
)
from app.store.records import RecordStore

logger = logging.getLogger(__name__)


def conflict(store: RecordStore, exc: NaturalKeyConflict) -> HTTPException:
    """409 carrying the record (alive or deleted) that holds the natural key."""
    doc = store.read(exc.natural_key, include_deleted=True)
    return HTTPException(
        status_code=409,
        detail={"message": str(exc), "doc": jsonable_encoder(doc)},
    )


async def _validation_failure(request: Request, exc: ValidationFailure) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": exc.errors})


async def _natural_key_conflict(request: Request, exc: NaturalKeyConflict) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"detail": {"message": str(exc), "key": jsonable_encoder(exc.natural_key)}},
    )


async def _write_conflict(request: Request, exc: WriteConflict) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


async def _key_exhaustion(request: Request, exc: KeyExhaustion) -> JSONResponse:
    logger.error("Key exhaustion in '%s': %s", exc.collection, exc)
    return JSONResponse(
        status_code=503, content={"detail": "Could not allocate a record identifier"}
    )


async def _store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("Database unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Database unavailable"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationFailure, _validation_failure)
    app.add_exception_handler(NaturalKeyConflict, _natural_key_conflict)
    app.add_exception_handler(WriteConflict, _write_conflict)
    app.add_exception_handler(KeyExhaustion, _key_exhaustion)
    app.add_exception_handler(StoreUnavailable, _store_unavailable)
