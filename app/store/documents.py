"""
Document store over the SQLAlchemy-mapped `documents` table.

Offers the primitives the record store is built from: insert, conditional
update, resurrect-or-insert, filtered find with sort, and hard delete. Unique
constraint violations surface as `DuplicateKeyError` tagged with the
constraint that fired, so callers can tell a primary-key collision from a
natural-key one.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from app.models.database import DEFERRED_BEGIN
from app.models.document import NATURAL_KEY_INDEX_NAME, PRIMARY_KEY_NAME, Document
from app.store.entities import KeyField
from app.store.errors import DuplicateKeyError, KeyKind, StoreUnavailable

logger = logging.getLogger(__name__)

COLUMNS = (
    "collection",
    "id",
    "natural_key",
    "content",
    "version",
    "created_at",
    "created_by",
    "modified_at",
    "modified_by",
    "deleted_at",
    "inactive_at",
)


class State(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"


@dataclass
class Query:
    """Selection criteria within one collection."""

    collection: str
    id: str | None = None
    natural_key: str | None = None
    match: dict[str, Any] = field(default_factory=dict)
    state: State = State.ACTIVE
    version: int | None = None


def _content_field(name: str, value_type: type):
    element = Document.content[name]
    if value_type is bool:
        return element.as_boolean()
    if value_type is int:
        return element.as_integer()
    if value_type is float:
        return element.as_float()
    return element.as_string()


def _conditions(query: Query) -> list:
    conditions = [Document.collection == query.collection]
    if query.id is not None:
        conditions.append(Document.id == query.id)
    if query.natural_key is not None:
        conditions.append(Document.natural_key == query.natural_key)
    if query.version is not None:
        conditions.append(Document.version == query.version)
    if query.state == State.ACTIVE:
        conditions.append(Document.deleted_at.is_(None))
    elif query.state == State.DELETED:
        conditions.append(Document.deleted_at.is_not(None))
    for name, value in query.match.items():
        if value is None:
            conditions.append(_content_field(name, str).is_(None))
        else:
            conditions.append(_content_field(name, type(value)) == value)
    return conditions


def _order(sort: Sequence[KeyField | str], descending: bool) -> list:
    order = []
    for item in sort:
        if isinstance(item, KeyField):
            expression = _content_field(item.name, item.type)
        else:
            expression = getattr(Document, item)
        order.append(expression.desc() if descending else expression.asc())
    return order


def _as_dict(doc: Document) -> dict[str, Any]:
    return {name: getattr(doc, name) for name in COLUMNS}


def _duplicate_kind(exc: IntegrityError) -> KeyKind | None:
    message = str(exc.orig)
    if NATURAL_KEY_INDEX_NAME in message or "documents.natural_key" in message:
        return KeyKind.NATURAL
    if PRIMARY_KEY_NAME in message or "documents.id" in message:
        return KeyKind.PRIMARY
    return None


class DocumentStore:
    """Each public method runs in its own short transaction."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _errors(self, collection: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            kind = _duplicate_kind(exc)
            if kind is None:
                raise
            logger.debug("Duplicate %s key rejected in '%s'", kind.value, collection)
            raise DuplicateKeyError(collection, kind) from exc
        except OperationalError as exc:
            raise StoreUnavailable(str(exc.orig)) from exc

    @contextmanager
    def _transaction(self, collection: str) -> Iterator[Session]:
        with self._errors(collection), self._session_factory.begin() as session:
            yield session

    @contextmanager
    def _reading(self, collection: str) -> Iterator[Session]:
        """Read-only session; its transaction is rolled back on close."""
        with self._errors(collection), self._session_factory() as session:
            session.connection(execution_options={DEFERRED_BEGIN: True})
            yield session

    def insert(
        self,
        collection: str,
        doc_id: str,
        natural_key: str,
        content: dict[str, Any],
        *,
        created_at: datetime,
        created_by: dict[str, str] | None = None,
        inactive_at: datetime | None = None,
    ) -> None:
        with self._transaction(collection) as session:
            session.add(
                Document(
                    collection=collection,
                    id=doc_id,
                    natural_key=natural_key,
                    content=content,
                    version=1,
                    created_at=created_at,
                    created_by=created_by,
                    inactive_at=inactive_at,
                )
            )
            session.flush()

    def resurrect_or_insert(
        self,
        collection: str,
        doc_id: str,
        natural_key: str,
        content: dict[str, Any],
        *,
        now: datetime,
        author: dict[str, str] | None = None,
        inactive_at: datetime | None = None,
    ) -> tuple[str, bool]:
        """
        Revive the latest deleted record of `natural_key`, or insert a new one.

        A revived record keeps its primary key, `created_at` and `created_by`;
        its content is replaced and `deleted_at` cleared. Both branches run in
        one transaction. The revive is a single update conditioned on the
        record still being deleted, and the alive-natural-key index rejects
        whichever concurrent caller comes second, so a lost race surfaces as
        a natural-key `DuplicateKeyError` rather than two alive records.

        Returns the primary key of the affected document and whether it was
        revived.
        """
        latest_deleted = (
            select(Document.id)
            .where(
                Document.collection == collection,
                Document.natural_key == natural_key,
                Document.deleted_at.is_not(None),
            )
            .order_by(Document.deleted_at.desc())
            .limit(1)
        )
        values: dict[str, Any] = {
            "content": content,
            "version": Document.version + 1,
            "modified_at": now,
            "deleted_at": None,
            "inactive_at": inactive_at,
        }
        if author is not None:
            values["modified_by"] = author

        with self._transaction(collection) as session:
            revived_id = session.scalar(latest_deleted)
            if revived_id is not None:
                result = session.execute(
                    update(Document)
                    .where(
                        Document.collection == collection,
                        Document.id == revived_id,
                        Document.deleted_at.is_not(None),
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount:
                    return revived_id, True

            session.add(
                Document(
                    collection=collection,
                    id=doc_id,
                    natural_key=natural_key,
                    content=content,
                    version=1,
                    created_at=now,
                    created_by=author,
                    inactive_at=inactive_at,
                )
            )
            session.flush()
            return doc_id, False

    def update(self, query: Query, values: dict[str, Any]) -> int:
        """Apply `values` to every document matching `query`; returns the match count."""
        values = {**values, "version": Document.version + 1}
        with self._transaction(query.collection) as session:
            result = session.execute(
                update(Document)
                .where(*_conditions(query))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    def delete(self, query: Query) -> int:
        with self._transaction(query.collection) as session:
            result = session.execute(
                delete(Document)
                .where(*_conditions(query))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    def find(
        self,
        query: Query,
        sort: Sequence[KeyField | str] = (),
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        statement = select(Document).where(*_conditions(query)).order_by(
            *_order(sort, descending)
        )
        if limit is not None:
            statement = statement.limit(limit)
        with self._reading(query.collection) as session:
            return [_as_dict(doc) for doc in session.scalars(statement)]

    def find_one(
        self, query: Query, sort: Sequence[KeyField | str] = (), descending: bool = False
    ) -> dict[str, Any] | None:
        found = self.find(query, sort=sort, descending=descending, limit=1)
        return found[0] if found else None
