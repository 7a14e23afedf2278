"""
JSON Schema validation service.

Collects all errors rather than failing on the first one.
"""

from typing import Any

import jsonschema

from app.store.errors import ValidationFailure


def validate_against_schema(data: Any, schema: dict[str, Any]) -> list[str]:
    """
    Validate a document against a JSON schema.
    Returns a list of error messages (empty list = valid).
    """
    validator = jsonschema.Draft7Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        location = "/".join(str(part) for part in error.path)
        errors.append(f"{location}: {error.message}" if location else error.message)
    return errors


class SchemaValidator:
    """A compiled schema that either reports or raises its errors."""

    def __init__(self, schema: dict[str, Any]):
        self.schema = schema

    def errors(self, data: Any) -> list[str]:
        return validate_against_schema(data, self.schema)

    def validate(self, data: Any) -> Any:
        errors = self.errors(data)
        if errors:
            raise ValidationFailure(errors)
        return data
