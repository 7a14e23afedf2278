"""
Entity definitions: the variation points of the record store.

Each registry collection differs only in how its natural key is built, how
its primary key is assigned, and what happens on create. Everything else is
shared by `RecordStore`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class PrimaryKeyStrategy(str, Enum):
    NATURAL = "natural"  # primary key equals the natural key
    RANDOM = "random"  # short random integer, retried on collision


@dataclass(frozen=True)
class KeyField:
    """One component of a natural key."""

    name: str
    type: type = str
    optional: bool = False


@dataclass(frozen=True)
class EntitySpec:
    collection: str
    natural_key: tuple[KeyField, ...]
    primary_key: PrimaryKeyStrategy = PrimaryKeyStrategy.RANDOM
    resurrect: bool = False
    hard_delete_fallback: bool = False
    created_inactive: bool = False
    summary_fields: tuple[str, ...] = ()

    def key_values(self, source: dict[str, Any]) -> dict[str, Any]:
        """Extract the natural key mapping from a content document."""
        values: dict[str, Any] = {}
        for field in self.natural_key:
            value = source.get(field.name)
            if value is None and not field.optional:
                raise ValueError(
                    f"'{self.collection}' natural key field '{field.name}' is missing"
                )
            values[field.name] = value
        return values

    def encode_key(self, values: dict[str, Any]) -> str:
        """Canonical string form of a natural key, stored in `natural_key`."""
        parts = [values.get(field.name) for field in self.natural_key]
        if len(parts) == 1 and isinstance(parts[0], str):
            return parts[0]
        return json.dumps(parts, default=str, separators=(",", ":"), ensure_ascii=False)

    def encode_id(self, key: Any) -> str:
        return str(key)

    def decode_id(self, stored: str) -> Any:
        if self.primary_key == PrimaryKeyStrategy.RANDOM:
            return int(stored)
        return stored


CONTINGENT = EntitySpec(
    collection="contingent",
    natural_key=(KeyField("code"),),
    primary_key=PrimaryKeyStrategy.NATURAL,
    resurrect=True,
    hard_delete_fallback=True,
    summary_fields=("code", "desc"),
)

EXAMINATION = EntitySpec(
    collection="examination",
    natural_key=(KeyField("type"), KeyField("accounted"), KeyField("number", int)),
    primary_key=PrimaryKeyStrategy.RANDOM,
    resurrect=True,
    summary_fields=(
        "type",
        "accounted",
        "number",
        "contingent",
        "lpu",
        "location",
        "examined",
        "result",
        "tests",
    ),
)

EMPLOYEE = EntitySpec(
    collection="employee",
    natural_key=(
        KeyField("lastname"),
        KeyField("firstname"),
        KeyField("middlename", optional=True),
        KeyField("birthdate"),
    ),
    primary_key=PrimaryKeyStrategy.RANDOM,
    summary_fields=("lastname", "firstname", "middlename", "birthdate", "position"),
)

LPU = EntitySpec(
    collection="lpu",
    natural_key=(KeyField("code"), KeyField("dep", optional=True)),
    primary_key=PrimaryKeyStrategy.RANDOM,
    created_inactive=True,
    summary_fields=("code", "dep", "abbr", "name", "opf"),
)
