"""
Registry of examination result types.

An examination's `type` tag selects a variant that knows how to validate the
test result and how to shape it for responses. Adding an assay kind means
registering one more `Variant`; the record store is unaware of them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from app.config import ResultLimits
from app.schemas.results import hcv_result_schema, hiv_result_schema
from app.services.validation import SchemaValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Variant:
    name: str
    schema_factory: Callable[[ResultLimits], dict]
    fields: tuple[str, ...]
    list_fields: tuple[str, ...]

    def schema(self, limits: ResultLimits | None = None) -> SchemaValidator:
        """Validator for one test result under the given limits."""
        return SchemaValidator(self.schema_factory(limits or ResultLimits()))

    def _format_result(self, doc: Any, fields: tuple[str, ...]) -> dict[str, Any] | None:
        if not isinstance(doc, dict):
            return None
        formatted = {name: doc[name] for name in fields if doc.get(name) is not None}
        return formatted or None

    def format_doc(self, record: dict[str, Any]) -> dict[str, Any]:
        """Full view: the result and every test sub-result."""
        response = {k: v for k, v in record.items() if k not in ("result", "tests")}
        result = self._format_result(record.get("result"), self.fields)
        if result is not None:
            response["result"] = result
        tests = [self._format_result(test, self.fields) for test in record.get("tests") or []]
        tests = [test for test in tests if test]
        if tests:
            response["tests"] = tests
        return response

    def format_list(self, record: dict[str, Any]) -> dict[str, Any]:
        """List view: the result summary and the number of tests."""
        response = {k: v for k, v in record.items() if k not in ("result", "tests")}
        result = self._format_result(record.get("result"), self.list_fields)
        if result is not None:
            response["result"] = result
        tests = record.get("tests")
        count = tests if isinstance(tests, int) else len(tests or [])
        if count:
            response["tests"] = count
        return response


_registry: dict[str, Variant] = {}


def register(variant: Variant) -> Variant:
    if variant.name in _registry:
        raise ValueError(f"Result type '{variant.name}' is already registered")
    _registry[variant.name] = variant
    logger.debug("Registered result type '%s'", variant.name)
    return variant


def lookup(tag: str) -> Variant | None:
    """Variant for an examination type tag, or None for unknown tags."""
    return _registry.get(tag)


def names() -> list[str]:
    return sorted(_registry)


HIV = register(
    Variant(
        name="hiv",
        schema_factory=hiv_result_schema,
        fields=("antihiv", "hiv1p24ag", "elisa"),
        list_fields=("antihiv", "hiv1p24ag"),
    )
)

HCV = register(
    Variant(
        name="hcv",
        schema_factory=hcv_result_schema,
        fields=("antihcv", "antihcvigg", "antihcvigm", "rnahcv"),
        list_fields=("antihcv", "antihcvigg", "antihcvigm", "rnahcv"),
    )
)
