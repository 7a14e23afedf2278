"""Shared fixtures: a throwaway SQLite database per test."""

import os

# Point the application engine at SQLite before any app module is imported.
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy.orm import sessionmaker

from app.models.database import Base, build_engine
from app.models.document import Document  # noqa: F401
from app.schemas.api import Identity
from app.store.documents import DocumentStore


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'registry.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def documents(engine):
    return DocumentStore(sessionmaker(bind=engine, autoflush=False))


@pytest.fixture
def alice():
    return Identity(user_id=1, first_name="Alice", last_name="Smith")


@pytest.fixture
def bob():
    return Identity(user_id=2, first_name="Bob", last_name="Jones")


def stub_generator(*keys):
    """Key generator returning `keys` in order and recording each call."""
    remaining = iter(keys)
    calls = []

    def generate():
        key = next(remaining)
        calls.append(key)
        return key

    generate.calls = calls
    return generate


@pytest.fixture
def keys():
    return stub_generator
