"""
FastAPI routes for the registry collections.

Handlers stay thin: validate input, call the record store, shape the
response. A store operation that matches nothing becomes a 404; a natural
key held by another record becomes a 409 carrying that record.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.dependencies import (
    contingent_store,
    employee_store,
    examination_store,
    get_identity,
    lpu_store,
)
from app.api.errors import conflict
from app.config import settings
from app.models.database import engine
from app.schemas.api import (
    ContingentIn,
    ContingentUpdate,
    CreatedResponse,
    EmployeeIn,
    ExaminationIn,
    HealthResponse,
    Identity,
    LpuIn,
)
from app.services.result_types import Variant, lookup, names
from app.store.errors import NaturalKeyConflict, ValidationFailure
from app.store.records import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _found(record: dict[str, Any] | None, what: str) -> dict[str, Any]:
    if record is None:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    return record


def _matched(matched: bool, what: str) -> dict[str, bool]:
    if not matched:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    return {"ok": True}


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check():
    """Basic health endpoint – verifies DB connectivity."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError:
        db_status = "disconnected"
    return HealthResponse(
        status="healthy",
        environment=settings.ENVIRONMENT,
        database=db_status,
    )


# ---------------------------------------------------------------------------
# Contingent
# ---------------------------------------------------------------------------

@router.post("/contingents", response_model=CreatedResponse, status_code=201)
def create_contingent(
    body: ContingentIn,
    store: RecordStore = Depends(contingent_store),
    identity: Identity | None = Depends(get_identity),
):
    try:
        code = store.create(body.model_dump(exclude_none=True), identity)
    except NaturalKeyConflict as exc:
        raise conflict(store, exc) from exc
    return CreatedResponse(id=code)


@router.get("/contingents")
def list_contingents(store: RecordStore = Depends(contingent_store)):
    return store.list()


@router.get("/contingents/{code}")
def get_contingent(code: str, store: RecordStore = Depends(contingent_store)):
    return _found(store.read(code), "Contingent")


@router.put("/contingents/{code}")
def replace_contingent(
    code: str,
    body: ContingentUpdate,
    store: RecordStore = Depends(contingent_store),
    identity: Identity | None = Depends(get_identity),
):
    content = {"code": code, **body.model_dump(exclude_none=True)}
    return _matched(store.replace(code, content, identity), "Contingent")


@router.patch("/contingents/{code}")
def update_contingent(
    code: str,
    body: ContingentUpdate,
    store: RecordStore = Depends(contingent_store),
    identity: Identity | None = Depends(get_identity),
):
    return _matched(store.update(code, {"desc": body.desc}, identity), "Contingent")


@router.delete("/contingents/{code}")
def delete_contingent(
    code: str,
    store: RecordStore = Depends(contingent_store),
    identity: Identity | None = Depends(get_identity),
):
    return _matched(store.remove(code, identity), "Contingent")


@router.get("/contingents/{code}/history")
def contingent_history(code: str, store: RecordStore = Depends(contingent_store)):
    return store.list_deleted({"code": code})


# ---------------------------------------------------------------------------
# Examination
# ---------------------------------------------------------------------------

def _variant(exam_type: str) -> Variant:
    variant = lookup(exam_type)
    if variant is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown examination type '{exam_type}'; known: {', '.join(names())}",
        )
    return variant


def _examination_content(variant: Variant, body: ExaminationIn) -> dict[str, Any]:
    """Validate the type-specific result fields and build the stored document."""
    limits = settings.result_limits()
    validator = variant.schema(limits)
    errors = [f"result: {e}" for e in validator.errors(body.result)]
    for index, test in enumerate(body.tests or []):
        errors.extend(f"tests/{index}: {e}" for e in validator.errors(test))
    if body.tests and len(body.tests) > limits.tests_max:
        errors.append(f"tests: at most {limits.tests_max} test results are allowed")
    if errors:
        raise ValidationFailure(errors)

    content = body.model_dump(mode="json", exclude_none=True)
    content["type"] = variant.name
    return content


def _examination_key(exam_type: str, accounted: date, number: int) -> dict[str, Any]:
    return {"type": exam_type, "accounted": accounted.isoformat(), "number": number}


@router.post("/examinations/{exam_type}", status_code=201)
def create_examination(
    exam_type: str,
    body: ExaminationIn,
    store: RecordStore = Depends(examination_store),
    identity: Identity | None = Depends(get_identity),
):
    variant = _variant(exam_type)
    content = _examination_content(variant, body)
    try:
        key = store.create(content, identity)
    except NaturalKeyConflict as exc:
        raise conflict(store, exc) from exc
    return variant.format_doc(_found(store.read(key), "Examination"))


@router.get("/examinations/{exam_type}")
def list_examinations(
    exam_type: str,
    accounted: date | None = None,
    store: RecordStore = Depends(examination_store),
):
    variant = _variant(exam_type)
    match: dict[str, Any] = {"type": variant.name}
    if accounted is not None:
        match["accounted"] = accounted.isoformat()
    return [variant.format_list(record) for record in store.list(match)]


@router.get("/examinations/{exam_type}/{accounted}/{number}")
def get_examination(
    exam_type: str,
    accounted: date,
    number: int,
    store: RecordStore = Depends(examination_store),
):
    variant = _variant(exam_type)
    record = store.read(_examination_key(variant.name, accounted, number))
    return variant.format_doc(_found(record, "Examination"))


@router.put("/examinations/{exam_type}/{accounted}/{number}")
def replace_examination(
    exam_type: str,
    accounted: date,
    number: int,
    body: ExaminationIn,
    store: RecordStore = Depends(examination_store),
    identity: Identity | None = Depends(get_identity),
):
    variant = _variant(exam_type)
    key = _examination_key(variant.name, accounted, number)
    content = {**_examination_content(variant, body), **key}
    return _matched(store.replace(key, content, identity), "Examination")


@router.delete("/examinations/{exam_type}/{accounted}/{number}")
def delete_examination(
    exam_type: str,
    accounted: date,
    number: int,
    store: RecordStore = Depends(examination_store),
    identity: Identity | None = Depends(get_identity),
):
    variant = _variant(exam_type)
    key = _examination_key(variant.name, accounted, number)
    return _matched(store.remove(key, identity), "Examination")


# ---------------------------------------------------------------------------
# Employee
# ---------------------------------------------------------------------------

@router.post("/employees", response_model=CreatedResponse, status_code=201)
def create_employee(
    body: EmployeeIn,
    store: RecordStore = Depends(employee_store),
    identity: Identity | None = Depends(get_identity),
):
    try:
        employee_id = store.create(body.model_dump(mode="json", exclude_none=True), identity)
    except NaturalKeyConflict as exc:
        raise conflict(store, exc) from exc
    return CreatedResponse(id=employee_id)


@router.get("/employees")
def list_employees(store: RecordStore = Depends(employee_store)):
    return store.list()


@router.get("/employees/{employee_id}")
def get_employee(employee_id: int, store: RecordStore = Depends(employee_store)):
    return _found(store.read(employee_id), "Employee")


@router.put("/employees/{employee_id}")
def replace_employee(
    employee_id: int,
    body: EmployeeIn,
    store: RecordStore = Depends(employee_store),
    identity: Identity | None = Depends(get_identity),
):
    content = body.model_dump(mode="json", exclude_none=True)
    return _matched(store.replace(employee_id, content, identity), "Employee")


@router.delete("/employees/{employee_id}")
def delete_employee(
    employee_id: int,
    store: RecordStore = Depends(employee_store),
    identity: Identity | None = Depends(get_identity),
):
    return _matched(store.remove(employee_id, identity), "Employee")


# ---------------------------------------------------------------------------
# LPU (health facility)
# ---------------------------------------------------------------------------

@router.post("/lpus", response_model=CreatedResponse, status_code=201)
def create_lpu(
    body: LpuIn,
    store: RecordStore = Depends(lpu_store),
    identity: Identity | None = Depends(get_identity),
):
    try:
        lpu_id = store.create(body.model_dump(exclude_none=True), identity)
    except NaturalKeyConflict as exc:
        raise conflict(store, exc) from exc
    return CreatedResponse(id=lpu_id)


@router.get("/lpus")
def list_lpus(store: RecordStore = Depends(lpu_store)):
    return store.list()


@router.get("/lpus/{lpu_id}")
def get_lpu(lpu_id: int, store: RecordStore = Depends(lpu_store)):
    return _found(store.read(lpu_id), "LPU")


@router.put("/lpus/{lpu_id}")
def replace_lpu(
    lpu_id: int,
    body: LpuIn,
    store: RecordStore = Depends(lpu_store),
    identity: Identity | None = Depends(get_identity),
):
    content = body.model_dump(exclude_none=True)
    return _matched(store.replace(lpu_id, content, identity), "LPU")


@router.delete("/lpus/{lpu_id}")
def delete_lpu(
    lpu_id: int,
    store: RecordStore = Depends(lpu_store),
    identity: Identity | None = Depends(get_identity),
):
    return _matched(store.remove(lpu_id, identity), "LPU")


@router.post("/lpus/{lpu_id}/restore")
def restore_lpu(lpu_id: int, store: RecordStore = Depends(lpu_store)):
    return _matched(store.restore(lpu_id), "Deleted LPU")


@router.post("/lpus/{lpu_id}/activate")
def activate_lpu(lpu_id: int, store: RecordStore = Depends(lpu_store)):
    return _matched(store.activate(lpu_id, True), "LPU")


@router.post("/lpus/{lpu_id}/deactivate")
def deactivate_lpu(lpu_id: int, store: RecordStore = Depends(lpu_store)):
    return _matched(store.activate(lpu_id, False), "LPU")
