"""Tests for created-by / modified-by snapshots."""

from app.schemas.api import Identity
from app.services.provenance import snapshot


def test_snapshot_copies_display_name(alice):
    assert snapshot(alice) == {"first_name": "Alice", "last_name": "Smith"}


def test_snapshot_trims_and_drops_blank_parts():
    identity = Identity(user_id=3, first_name="  Carol ", last_name="   ")
    assert snapshot(identity) == {"first_name": "Carol"}


def test_no_snapshot_without_a_name():
    assert snapshot(None) is None
    assert snapshot(Identity(user_id=4)) is None


def test_snapshot_is_detached_from_identity(alice):
    author = snapshot(alice)
    alice.first_name = "Alicia"
    assert author["first_name"] == "Alice"
