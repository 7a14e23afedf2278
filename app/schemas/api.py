"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, Field, PositiveInt


class Identity(BaseModel):
    """Acting user as established by the authentication middleware."""
    user_id: int | None = None
    first_name: str | None = None
    last_name: str | None = None


# ---------------------------------------------------------------------------
# Contingent
# ---------------------------------------------------------------------------

class ContingentIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=16, pattern=r"^\S+$")
    desc: str | None = Field(None, max_length=256)


class ContingentUpdate(BaseModel):
    desc: str | None = Field(None, max_length=256)


# ---------------------------------------------------------------------------
# Examination
# ---------------------------------------------------------------------------

class PatientIn(BaseModel):
    firstname: str | None = Field(None, max_length=64)
    lastname: str | None = Field(None, max_length=64)
    middlename: str | None = Field(None, max_length=64)
    birthdate: date | None = None
    sex: str | None = Field(None, pattern=r"^[fm]$")
    residence: str | None = None


class ExaminationIn(BaseModel):
    """Examination body; `type` comes from the URL and selects the result schema."""
    accounted: date
    number: PositiveInt
    contingent: str = Field(..., min_length=1, max_length=16)
    lpu: int
    location: str | None = None
    taken: date | None = None
    delivered: date | None = None
    examined: date | None = None
    patient: PatientIn | None = None
    result: dict[str, Any]
    tests: list[dict[str, Any]] | None = None


# ---------------------------------------------------------------------------
# Employee
# ---------------------------------------------------------------------------

class EmployeeIn(BaseModel):
    lastname: str = Field(..., min_length=1, max_length=64)
    firstname: str = Field(..., min_length=1, max_length=64)
    middlename: str | None = Field(None, max_length=64)
    birthdate: date
    position: str | None = Field(None, max_length=128)


# ---------------------------------------------------------------------------
# LPU (health facility)
# ---------------------------------------------------------------------------

class LpuIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=16)
    dep: str | None = Field(None, max_length=16)
    abbr: str | None = Field(None, max_length=64)
    name: str = Field(..., min_length=1, max_length=256)
    opf: str | None = Field(None, max_length=16)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class CreatedResponse(BaseModel):
    id: int | str


class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
    database: str = "connected"
