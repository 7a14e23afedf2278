"""Error taxonomy of the record store layer."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class KeyKind(str, Enum):
    PRIMARY = "primary"
    NATURAL = "natural"


class StoreError(Exception):
    """Base class for record store failures."""


class DuplicateKeyError(StoreError):
    """A write collided with a unique constraint of the documents table."""

    def __init__(self, collection: str, kind: KeyKind):
        super().__init__(f"Duplicate {kind.value} key in '{collection}'")
        self.collection = collection
        self.kind = kind


class KeyExhaustion(StoreError):
    """Retry budget spent without finding a free primary key."""

    def __init__(self, collection: str, document: dict[str, Any]):
        super().__init__(
            f"Exceeded maximum attempts to generate unique primary key for "
            f"'{collection}' document: {json.dumps(document, default=str)}"
        )
        self.collection = collection
        self.document = document


class NaturalKeyConflict(StoreError):
    """An alive record already holds the natural key."""

    def __init__(self, collection: str, natural_key: dict[str, Any]):
        super().__init__(f"'{collection}' record {natural_key} already exists")
        self.collection = collection
        self.natural_key = natural_key


class StoreUnavailable(StoreError):
    """The database could not be reached or timed out."""


class ValidationFailure(StoreError):
    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class WriteConflict(StoreError):
    """A record kept changing underneath an optimistic update."""

    def __init__(self, collection: str, key: Any):
        super().__init__(f"'{collection}' record {key} was modified concurrently")
        self.collection = collection
        self.key = key
