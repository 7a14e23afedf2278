"""Created-by / modified-by snapshots of the acting identity."""

from __future__ import annotations

from app.schemas.api import Identity


def snapshot(identity: Identity | None) -> dict[str, str] | None:
    """
    Copy the identity's display name at the moment of a write.

    Returns None for anonymous or internal callers; the record store then
    leaves the provenance field untouched instead of writing a partial one.
    """
    if identity is None:
        return None

    author = {}
    for key, value in (("first_name", identity.first_name), ("last_name", identity.last_name)):
        if value and value.strip():
            author[key] = value.strip()
    return author or None
