"""Tests for the record store on top of a real SQLite database."""

import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.config import KeyConfig
from app.models.database import Base
from app.store.entities import CONTINGENT, EMPLOYEE, EXAMINATION, LPU
from app.store.errors import (
    DuplicateKeyError,
    KeyExhaustion,
    KeyKind,
    NaturalKeyConflict,
    StoreUnavailable,
    WriteConflict,
)
from app.store.records import RecordStore

LAYOUT = KeyConfig(length=6, prefix=1)


@pytest.fixture
def contingents(documents):
    return RecordStore(CONTINGENT, documents)


@pytest.fixture
def employees(documents):
    return RecordStore(EMPLOYEE, documents, LAYOUT)


@pytest.fixture
def lpus(documents):
    return RecordStore(LPU, documents, LAYOUT)


def _employee(lastname, firstname="Anna", birthdate="1980-02-03", **extra):
    return {"lastname": lastname, "firstname": firstname, "birthdate": birthdate, **extra}


def _examination(number, exam_type="hiv", **extra):
    return {
        "type": exam_type,
        "accounted": "2024-03-01",
        "number": number,
        "contingent": "C1",
        "lpu": 1000001,
        "result": {"antihiv": 0},
        **extra,
    }


# ---------------------------------------------------------------------------
# Create, delete and resurrect
# ---------------------------------------------------------------------------

def test_conflict_delete_and_resurrect(contingents, alice, bob):
    assert contingents.create({"code": "C1", "desc": "first"}, alice) == "C1"
    original = contingents.read("C1")

    with pytest.raises(NaturalKeyConflict) as info:
        contingents.create({"code": "C1", "desc": "second"}, bob)
    assert info.value.natural_key == {"code": "C1"}
    assert contingents.read("C1")["desc"] == "first"

    assert contingents.remove("C1", alice) is True
    assert contingents.read("C1") is None

    assert contingents.create({"code": "C1", "desc": "second"}, bob) == "C1"
    revived = contingents.read("C1")
    assert revived["desc"] == "second"
    assert revived["deleted_at"] is None
    assert revived["created_at"] == original["created_at"]
    assert revived["created_by"] == {"first_name": "Alice", "last_name": "Smith"}
    assert revived["modified_by"] == {"first_name": "Bob", "last_name": "Jones"}
    assert revived["modified_at"] is not None


def test_create_without_identity_leaves_provenance_empty(contingents):
    contingents.create({"code": "C2"})
    record = contingents.read("C2")
    assert record["created_by"] is None
    assert record["modified_at"] is None


def test_create_requires_natural_key(employees):
    with pytest.raises(ValueError):
        employees.create({"lastname": "Smith", "firstname": "Anna"})


def test_random_entity_requires_key_layout(documents):
    with pytest.raises(ValueError):
        RecordStore(EMPLOYEE, documents)


def test_examination_resurrect_keeps_primary_key(documents, keys):
    generator = keys(101, 102, 103)
    store = RecordStore(EXAMINATION, documents, LAYOUT, generator=generator)

    first = store.create(_examination(7))
    assert first == 101
    assert store.remove(first)

    assert store.create(_examination(7, result={"antihiv": 1})) == 101
    assert store.read(101)["result"] == {"antihiv": 1}
    assert store.list_deleted({"type": "hiv", "accounted": "2024-03-01", "number": 7}) == []


def test_plain_insert_entity_builds_history(employees):
    first = employees.create(_employee("Smith"))
    assert employees.remove(first)
    second = employees.create(_employee("Smith"))
    assert second != first
    assert employees.remove(second)

    history = employees.list_deleted(_employee("Smith"))
    assert [entry["id"] for entry in history] == [first, second]
    assert all(entry["deleted_at"] is not None for entry in history)
    assert history[0]["deleted_at"] <= history[1]["deleted_at"]


def test_delete_is_not_repeatable(contingents):
    contingents.create({"code": "C3"})
    assert contingents.remove("C3") is True
    assert contingents.remove("C3") is False
    assert contingents.remove("missing") is False


def test_concurrent_creates_leave_one_alive_record(contingents):
    def attempt(n):
        try:
            return contingents.create({"code": "C9", "desc": f"writer {n}"})
        except NaturalKeyConflict:
            return None

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(8)))

    assert outcomes.count("C9") == 1
    assert outcomes.count(None) == 7
    assert len(contingents.list()) == 1


def test_concurrent_resurrects_revive_once(documents):
    store = RecordStore(EXAMINATION, documents, KeyConfig(length=9))
    exam_id = store.create(_examination(5))
    store.remove(exam_id)

    def attempt(n):
        try:
            return store.create(_examination(5))
        except NaturalKeyConflict:
            return None

    with ThreadPoolExecutor(max_workers=6) as pool:
        outcomes = list(pool.map(attempt, range(6)))

    assert outcomes.count(exam_id) == 1
    assert outcomes.count(None) == 5


def test_create_logs_audit_line(contingents, alice, caplog):
    caplog.set_level(logging.INFO, logger="app.store.records")
    contingents.create({"code": "C4"}, alice)
    assert "AUDIT: Alice Smith create contingent/C4" in caplog.text


# ---------------------------------------------------------------------------
# Primary key retry
# ---------------------------------------------------------------------------

def test_primary_key_collision_is_retried(documents, keys):
    RecordStore(EMPLOYEE, documents, LAYOUT, generator=keys(101)).create(_employee("Adams"))

    generator = keys(101, 101, 102)
    store = RecordStore(EMPLOYEE, documents, LAYOUT, generator=generator)

    assert store.create(_employee("Brown")) == 102
    assert generator.calls == [101, 101, 102]
    assert store.read(102)["lastname"] == "Brown"


def test_primary_key_retry_budget(documents, keys):
    RecordStore(EMPLOYEE, documents, LAYOUT, generator=keys(101)).create(_employee("Adams"))

    generator = keys(101, 101, 102)
    store = RecordStore(
        EMPLOYEE, documents, KeyConfig(length=6, attempts=2), generator=generator
    )

    with pytest.raises(KeyExhaustion):
        store.create(_employee("Brown"))
    assert generator.calls == [101, 101]
    assert [record["lastname"] for record in store.list()] == ["Adams"]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def test_list_sorts_by_natural_key_and_projects(lpus):
    lpus.create({"code": "B", "name": "Second", "address": "Main st."})
    lpus.create({"code": "A", "dep": "2", "name": "First"})
    removed = lpus.create({"code": "0", "name": "Gone"})
    lpus.remove(removed)

    listed = lpus.list()
    assert [record["code"] for record in listed] == ["A", "B"]
    assert "address" not in listed[1]
    assert listed[0]["dep"] == "2"
    assert listed[0]["inactive_at"] is not None


def test_list_filters_and_sorts_numbers(documents):
    store = RecordStore(EXAMINATION, documents, KeyConfig(length=9))
    store.create(_examination(10))
    store.create(_examination(9))
    store.create(_examination(1, exam_type="hcv", result={"antihcv": 1}))

    listed = store.list({"type": "hiv"})
    assert [record["number"] for record in listed] == [9, 10]
    assert [record["number"] for record in store.list({"type": "hcv"})] == [1]


def test_read_include_deleted(employees):
    employee_id = employees.create(_employee("Smith"))
    employees.remove(employee_id)

    assert employees.read(employee_id) is None
    record = employees.read(employee_id, include_deleted=True)
    assert record["id"] == employee_id
    assert record["deleted_at"] is not None
    assert employees.read(_employee("Smith"), include_deleted=True)["id"] == employee_id


# ---------------------------------------------------------------------------
# Replace and update
# ---------------------------------------------------------------------------

def test_replace_only_touches_alive_records(employees, bob):
    employee_id = employees.create(_employee("Smith"))
    assert employees.replace(employee_id, _employee("Smith", position="nurse"), bob)
    record = employees.read(employee_id)
    assert record["position"] == "nurse"
    assert record["modified_by"] == {"first_name": "Bob", "last_name": "Jones"}

    employees.remove(employee_id)
    assert employees.replace(employee_id, _employee("Smith", position="doctor")) is False
    assert employees.read(employee_id, include_deleted=True)["position"] == "nurse"


def test_replace_onto_alive_natural_key_conflicts(employees):
    employees.create(_employee("Smith"))
    other = employees.create(_employee("Jones"))

    with pytest.raises(NaturalKeyConflict):
        employees.replace(other, _employee("Smith"))
    assert employees.read(other)["lastname"] == "Jones"


def test_replace_cannot_rename_natural_primary_key(contingents):
    contingents.create({"code": "C1"})
    with pytest.raises(ValueError):
        contingents.replace("C1", {"code": "C2"})


def test_update_merges_and_unsets(contingents):
    contingents.create({"code": "C1", "desc": "old"})

    assert contingents.update("C1", {"desc": "new"}) is True
    assert contingents.read("C1")["desc"] == "new"

    assert contingents.update("C1", {"desc": None}) is True
    assert "desc" not in contingents.read("C1")

    assert contingents.update("missing", {"desc": "x"}) is False


def test_update_gives_up_on_constant_interference(contingents, documents, monkeypatch):
    contingents.create({"code": "C1", "desc": "old"})
    monkeypatch.setattr(documents, "update", lambda query, values: 0)

    with pytest.raises(WriteConflict):
        contingents.update("C1", {"desc": "new"})


# ---------------------------------------------------------------------------
# Restore, activation and hard delete
# ---------------------------------------------------------------------------

def test_restore_deleted_record(lpus):
    lpu_id = lpus.create({"code": "A", "name": "First"})
    lpus.remove(lpu_id)

    assert lpus.restore(lpu_id) is True
    assert lpus.read(lpu_id)["deleted_at"] is None
    assert lpus.restore(lpu_id) is False


def test_restore_conflicts_with_alive_record(lpus):
    old = lpus.create({"code": "A", "name": "First"})
    lpus.remove(old)
    lpus.create({"code": "A", "name": "Replacement"})

    with pytest.raises(NaturalKeyConflict):
        lpus.restore(old)
    assert lpus.read(old) is None


def test_lpu_created_inactive_until_activated(lpus):
    lpu_id = lpus.create({"code": "A", "name": "First"})
    assert lpus.read(lpu_id)["inactive_at"] is not None

    assert lpus.activate(lpu_id, True) is True
    assert lpus.read(lpu_id)["inactive_at"] is None

    assert lpus.activate(lpu_id, False) is True
    assert lpus.read(lpu_id)["inactive_at"] is not None

    assert lpus.activate(999, True) is False


def test_contingent_falls_back_to_hard_delete(contingents, documents, monkeypatch, caplog):
    contingents.create({"code": "C1"})

    def collide(query, values):
        raise DuplicateKeyError("contingent", KeyKind.NATURAL)

    monkeypatch.setattr(documents, "update", collide)
    with caplog.at_level(logging.ERROR, logger="app.store.records"):
        assert contingents.remove("C1") is True

    assert "hit a unique constraint" in caplog.text
    assert contingents.read("C1", include_deleted=True) is None


def test_other_entities_do_not_hard_delete(employees, documents, monkeypatch):
    employee_id = employees.create(_employee("Smith"))

    def collide(query, values):
        raise DuplicateKeyError("employee", KeyKind.NATURAL)

    monkeypatch.setattr(documents, "update", collide)
    with pytest.raises(DuplicateKeyError):
        employees.remove(employee_id)
    assert employees.read(employee_id) is not None


# ---------------------------------------------------------------------------
# Database access
# ---------------------------------------------------------------------------

def test_database_failure_is_reported_as_unavailable(contingents, engine):
    contingents.create({"code": "C1"})
    Base.metadata.drop_all(bind=engine)

    with pytest.raises(StoreUnavailable):
        contingents.read("C1")
    with pytest.raises(StoreUnavailable):
        contingents.create({"code": "C2"})


def test_reads_do_not_wait_for_writers(contingents, engine):
    contingents.create({"code": "C1"})

    # engine.begin() takes the SQLite write lock until the block exits
    with engine.begin():
        assert contingents.read("C1")["code"] == "C1"
        assert [record["code"] for record in contingents.list()] == ["C1"]
