"""FastAPI dependencies wiring record stores to the request."""

from fastapi import Depends, Request

from app.config import settings
from app.models.database import SessionLocal
from app.schemas.api import Identity
from app.store.documents import DocumentStore
from app.store.entities import CONTINGENT, EMPLOYEE, EXAMINATION, LPU
from app.store.records import RecordStore


def get_documents() -> DocumentStore:
    return DocumentStore(SessionLocal)


def get_identity(request: Request) -> Identity | None:
    """Identity placed on the request by the authentication middleware, if any."""
    return getattr(request.state, "identity", None)


def contingent_store(documents: DocumentStore = Depends(get_documents)) -> RecordStore:
    return RecordStore(CONTINGENT, documents)


def examination_store(documents: DocumentStore = Depends(get_documents)) -> RecordStore:
    return RecordStore(EXAMINATION, documents, settings.key_config(EXAMINATION.collection))


def employee_store(documents: DocumentStore = Depends(get_documents)) -> RecordStore:
    return RecordStore(EMPLOYEE, documents, settings.key_config(EMPLOYEE.collection))


def lpu_store(documents: DocumentStore = Depends(get_documents)) -> RecordStore:
    return RecordStore(LPU, documents, settings.key_config(LPU.collection))
