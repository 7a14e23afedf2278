"""
Random primary keys with retry-on-collision.

Keys are short random integers rather than sequences, so two concurrent
inserts can draw the same value. The document store reports that as a
primary-key duplicate and the insert is retried with a fresh key.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Callable, TypeVar

from app.config import KeyConfig
from app.store.errors import DuplicateKeyError, KeyExhaustion, KeyKind

logger = logging.getLogger(__name__)

DEFAULT_INSERT_ATTEMPTS = 3

T = TypeVar("T")


def generate_key(length: int, prefix: int = 0) -> int:
    """
    Return `prefix` followed by `length` random decimal digits.

    The prefix sits above the random part, so keys drawn with distinct
    prefixes never collide.
    """
    if length <= 0:
        raise ValueError("Key length must be positive")
    if prefix < 0:
        raise ValueError("Key prefix must be non-negative")
    base = 10**length
    return prefix * base + secrets.randbelow(base)


class KeyGenerator:
    """Callable producing keys for one collection's layout."""

    def __init__(self, config: KeyConfig):
        self.config = config

    def __call__(self) -> int:
        return generate_key(self.config.length, self.config.prefix)


def with_retry(
    factory: Callable[[int, dict[str, Any]], T],
    generator: Callable[[], int],
    attempts: int = DEFAULT_INSERT_ATTEMPTS,
    collection: str = "",
) -> Callable[[dict[str, Any]], T]:
    """
    Wrap `factory(key, document)` so primary-key collisions are retried.

    `attempts` is the total number of tries. Any failure other than a
    primary-key duplicate propagates from the first attempt that raises it.
    """

    def create(document: dict[str, Any]) -> T:
        for attempt in range(1, attempts + 1):
            key = generator()
            try:
                return factory(key, document)
            except DuplicateKeyError as exc:
                if exc.kind != KeyKind.PRIMARY:
                    raise
                logger.warning(
                    "Primary key %s collided in '%s' (attempt %d/%d)",
                    key,
                    collection,
                    attempt,
                    attempts,
                )

        logger.error("Key space exhausted for '%s' after %d attempts", collection, attempts)
        raise KeyExhaustion(collection, document)

    return create
