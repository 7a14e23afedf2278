"""
Record store: CRUD, soft delete and resurrection for one entity collection.

Records are never removed on delete; `deleted_at` is stamped instead and the
natural key becomes free for reuse. Entities that resurrect revive their
latest deleted record on create, keeping the original creation provenance.

Every "nothing matched" outcome is reported as False/None rather than an
exception. A lost race on the same key shows up the same way, or as a
`NaturalKeyConflict` when two callers try to make the same key alive.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Callable

from app.config import KeyConfig
from app.schemas.api import Identity
from app.services.provenance import snapshot
from app.store.documents import DocumentStore, Query, State
from app.store.entities import EntitySpec, PrimaryKeyStrategy
from app.store.errors import (
    DuplicateKeyError,
    KeyKind,
    NaturalKeyConflict,
    WriteConflict,
)
from app.store.keys import DEFAULT_INSERT_ATTEMPTS, KeyGenerator, with_retry

logger = logging.getLogger(__name__)

UPDATE_ATTEMPTS = 5

LIFECYCLE_FIELDS = (
    "created_at",
    "created_by",
    "modified_at",
    "modified_by",
    "deleted_at",
    "inactive_at",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _actor(author: dict[str, str] | None) -> str:
    if not author:
        return "anonymous"
    return " ".join(author.get(k, "") for k in ("first_name", "last_name")).strip()


class RecordStore:
    """
    Store operations for the collection described by `entity`.

    Random-keyed entities need either a `key_config` or an explicit
    `generator` callable returning candidate primary keys.
    """

    def __init__(
        self,
        entity: EntitySpec,
        documents: DocumentStore,
        key_config: KeyConfig | None = None,
        generator: Callable[[], int] | None = None,
    ):
        self.entity = entity
        self.documents = documents
        self._attempts = key_config.attempts if key_config else DEFAULT_INSERT_ATTEMPTS
        self._generator = generator
        if entity.primary_key == PrimaryKeyStrategy.RANDOM and generator is None:
            if key_config is None:
                raise ValueError(
                    f"'{entity.collection}' uses random primary keys and needs a key layout"
                )
            self._generator = KeyGenerator(key_config)

    @property
    def collection(self) -> str:
        return self.entity.collection

    # ---- addressing -----------------------------------------------------

    def _query(self, key: Any, state: State) -> Query:
        """Select by primary key, or by natural key when `key` is a mapping."""
        if isinstance(key, Mapping):
            natural_key = self.entity.encode_key(self.entity.key_values(dict(key)))
            return Query(self.collection, natural_key=natural_key, state=state)
        return Query(self.collection, id=self.entity.encode_id(key), state=state)

    def _record(self, row: dict[str, Any]) -> dict[str, Any]:
        record = {"id": self.entity.decode_id(row["id"])}
        record.update(row["content"] or {})
        for name in LIFECYCLE_FIELDS:
            record[name] = row[name]
        return record

    def _is_conflict(self, exc: DuplicateKeyError) -> bool:
        # With natural primary keys the alive record also holds the id.
        return (
            exc.kind == KeyKind.NATURAL
            or self.entity.primary_key == PrimaryKeyStrategy.NATURAL
        )

    # ---- writes ---------------------------------------------------------

    def create(self, content: dict[str, Any], identity: Identity | None = None) -> Any:
        """
        Insert a record, or revive the deleted one holding the same natural key.

        Returns the primary key of the written record. Raises
        `NaturalKeyConflict` when an alive record already holds the key and
        `KeyExhaustion` when no free random primary key was found.
        """
        key_values = self.entity.key_values(content)
        natural_key = self.entity.encode_key(key_values)
        author = snapshot(identity)
        now = utcnow()
        inactive_at = now if self.entity.created_inactive else None

        def write(key: Any, document: dict[str, Any]) -> tuple[str, bool]:
            doc_id = self.entity.encode_id(key)
            try:
                if self.entity.resurrect:
                    return self.documents.resurrect_or_insert(
                        self.collection,
                        doc_id,
                        natural_key,
                        document,
                        now=now,
                        author=author,
                        inactive_at=inactive_at,
                    )
                self.documents.insert(
                    self.collection,
                    doc_id,
                    natural_key,
                    document,
                    created_at=now,
                    created_by=author,
                    inactive_at=inactive_at,
                )
                return doc_id, False
            except DuplicateKeyError as exc:
                if self._is_conflict(exc):
                    raise NaturalKeyConflict(self.collection, key_values) from exc
                raise

        if self.entity.primary_key == PrimaryKeyStrategy.RANDOM:
            create = with_retry(write, self._generator, self._attempts, self.collection)
            doc_id, revived = create(dict(content))
        else:
            doc_id, revived = write(natural_key, dict(content))

        logger.info(
            "AUDIT: %s %s %s/%s",
            _actor(author),
            "resurrect" if revived else "create",
            self.collection,
            doc_id,
        )
        return self.entity.decode_id(doc_id)

    def replace(
        self, key: Any, content: dict[str, Any], identity: Identity | None = None
    ) -> bool:
        """Replace the content of an alive record; deleted records are left alone."""
        key_values = self.entity.key_values(content)
        natural_key = self.entity.encode_key(key_values)
        if (
            self.entity.primary_key == PrimaryKeyStrategy.NATURAL
            and not isinstance(key, Mapping)
            and natural_key != self.entity.encode_id(key)
        ):
            raise ValueError(f"'{self.collection}' record {key} cannot change its natural key")

        values: dict[str, Any] = {
            "content": dict(content),
            "natural_key": natural_key,
            "modified_at": utcnow(),
        }
        author = snapshot(identity)
        if author is not None:
            values["modified_by"] = author

        try:
            matched = self.documents.update(self._query(key, State.ACTIVE), values)
        except DuplicateKeyError as exc:
            if self._is_conflict(exc):
                raise NaturalKeyConflict(self.collection, key_values) from exc
            raise

        if matched:
            logger.info("AUDIT: %s replace %s/%s", _actor(author), self.collection, key)
        return matched == 1

    def update(
        self, key: Any, fields: dict[str, Any], identity: Identity | None = None
    ) -> bool:
        """
        Merge `fields` into an alive record's content; None values unset a field.

        Uses the record version as a compare-and-swap token and retries when a
        concurrent write got in first.
        """
        author = snapshot(identity)
        for _ in range(UPDATE_ATTEMPTS):
            current = self.documents.find_one(self._query(key, State.ACTIVE))
            if current is None:
                return False

            merged = {**current["content"], **fields}
            content = {name: value for name, value in merged.items() if value is not None}
            key_values = self.entity.key_values(content)
            natural_key = self.entity.encode_key(key_values)
            if (
                self.entity.primary_key == PrimaryKeyStrategy.NATURAL
                and natural_key != current["id"]
            ):
                raise ValueError(
                    f"'{self.collection}' record {current['id']} cannot change its natural key"
                )

            values: dict[str, Any] = {
                "content": content,
                "natural_key": natural_key,
                "modified_at": utcnow(),
            }
            if author is not None:
                values["modified_by"] = author

            query = Query(
                self.collection,
                id=current["id"],
                state=State.ACTIVE,
                version=current["version"],
            )
            try:
                matched = self.documents.update(query, values)
            except DuplicateKeyError as exc:
                if self._is_conflict(exc):
                    raise NaturalKeyConflict(self.collection, key_values) from exc
                raise
            if matched:
                logger.info(
                    "AUDIT: %s update %s/%s", _actor(author), self.collection, current["id"]
                )
                return True
            logger.debug("Version %s of %s/%s is stale", current["version"], self.collection, key)

        raise WriteConflict(self.collection, key)

    def remove(self, key: Any, identity: Identity | None = None) -> bool:
        """Soft-delete the alive record; False when there is none."""
        now = utcnow()
        values: dict[str, Any] = {"deleted_at": now, "modified_at": now}
        author = snapshot(identity)
        if author is not None:
            values["modified_by"] = author

        query = self._query(key, State.ACTIVE)
        try:
            matched = self.documents.update(query, values)
        except DuplicateKeyError:
            if not self.entity.hard_delete_fallback:
                raise
            # Deleted records are outside the alive-key index, so this means
            # the table and the index disagree.
            logger.error(
                "Soft delete of %s/%s hit a unique constraint; deleting permanently",
                self.collection,
                key,
            )
            matched = self.documents.delete(query)
            if matched:
                logger.info("AUDIT: %s purge %s/%s", _actor(author), self.collection, key)
            return matched == 1

        if matched:
            logger.info("AUDIT: %s delete %s/%s", _actor(author), self.collection, key)
        return matched == 1

    def restore(self, key: Any) -> bool:
        """Clear `deleted_at` on a deleted record without touching its content."""
        row = self.documents.find_one(
            Query(self.collection, id=self.entity.encode_id(key), state=State.DELETED)
        )
        if row is None:
            return False

        query = Query(self.collection, id=row["id"], state=State.DELETED)
        try:
            matched = self.documents.update(query, {"deleted_at": None})
        except DuplicateKeyError as exc:
            if self._is_conflict(exc):
                key_values = self.entity.key_values(row["content"])
                raise NaturalKeyConflict(self.collection, key_values) from exc
            raise

        if matched:
            logger.info("AUDIT: %s restore %s/%s", _actor(None), self.collection, key)
        return matched == 1

    def activate(self, key: Any, active: bool) -> bool:
        """Show or hide an alive record in selection lists."""
        values = {"inactive_at": None if active else utcnow()}
        matched = self.documents.update(self._query(key, State.ACTIVE), values)
        if matched:
            logger.info(
                "AUDIT: %s %s %s/%s",
                _actor(None),
                "activate" if active else "deactivate",
                self.collection,
                key,
            )
        return matched == 1

    # ---- reads ----------------------------------------------------------

    def read(self, key: Any, include_deleted: bool = False) -> dict[str, Any] | None:
        """
        Return the alive record for `key`.

        With `include_deleted`, fall back to the most recently deleted record
        when no alive one exists.
        """
        row = self.documents.find_one(self._query(key, State.ACTIVE))
        if row is None and include_deleted:
            row = self.documents.find_one(
                self._query(key, State.DELETED), sort=["deleted_at"], descending=True
            )
        return self._record(row) if row else None

    def list(self, match: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Alive records sorted by natural key, projected to summary fields."""
        rows = self.documents.find(
            Query(self.collection, match=dict(match or {}), state=State.ACTIVE),
            sort=self.entity.natural_key,
        )
        summaries = []
        for row in rows:
            content = row["content"] or {}
            summary = {"id": self.entity.decode_id(row["id"])}
            for name in self.entity.summary_fields:
                if name in content:
                    summary[name] = content[name]
            if self.entity.created_inactive:
                summary["inactive_at"] = row["inactive_at"]
            summaries.append(summary)
        return summaries

    def list_deleted(self, natural_key: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Deletion history of one natural key, oldest deletion first."""
        rows = self.documents.find(self._query(natural_key, State.DELETED), sort=["deleted_at"])
        return [
            {
                "id": self.entity.decode_id(row["id"]),
                "created_at": row["created_at"],
                "deleted_at": row["deleted_at"],
            }
            for row in rows
        ]
