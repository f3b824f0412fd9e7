"""Shared fixtures for care_docs tests."""

from datetime import date
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from care_docs.database import Base, get_db
from care_docs.dependencies import get_document_generator
from care_docs.exceptions import GenerationError
from care_docs.main import app
from care_docs.models import CareClient, Helper, BillingRecord
from care_docs.schemas import CareClientSchema, DocumentScheduleSchema, GeneratedDocument
from care_docs.services.repository import ScheduleRepository


class FakeGenerator:
    """In-memory document generator that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.fail_doc_types: set = set()
        self.fail_client_ids: set = set()
        self.plan_revision_needed: Optional[bool] = None
        self.plan_revision_reason: Optional[str] = None

    def generate(self, doc_type: str, client: CareClientSchema, context: Dict[str, Any]) -> GeneratedDocument:
        self.calls.append((doc_type, client.id, context))
        if doc_type in self.fail_doc_types or client.id in self.fail_client_ids:
            raise GenerationError(f"generator unavailable for {doc_type}")
        monitoring = doc_type == "monitoring"
        return GeneratedDocument(
            file_url=f"https://files.test/{client.id}/{doc_type}.pdf",
            document_id=f"{doc_type}-{len(self.calls)}",
            plan_revision_needed=self.plan_revision_needed if monitoring else None,
            plan_revision_reason=self.plan_revision_reason if monitoring else None,
        )


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database shared across threads."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def repository(db_session) -> ScheduleRepository:
    return ScheduleRepository(db_session)


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def add_client(db_session):
    """Insert a care client row and return it as a schema."""

    def _add(
        name: str = "山田 花子",
        contract_start: Optional[date] = date(2025, 3, 1),
        care_level: Optional[str] = "要介護2",
        services: Optional[List[str]] = None,
        deleted: bool = False,
    ) -> CareClientSchema:
        row = CareClient(
            name=name,
            contract_start=contract_start,
            care_level=care_level,
            services=services if services is not None else ["身体介護"],
            deleted=deleted,
        )
        db_session.add(row)
        db_session.commit()
        db_session.refresh(row)
        return CareClientSchema.model_validate(row)

    return _add


@pytest.fixture
def add_helper(db_session):
    def _add(name: str, hire_date: Optional[date]) -> None:
        db_session.add(Helper(name=name, hire_date=hire_date))
        db_session.commit()

    return _add


@pytest.fixture
def add_billing(db_session):
    def _add(client: CareClientSchema, helper_name: str, service_date: date, service_code: str = "身体介護") -> None:
        db_session.add(BillingRecord(
            care_client_id=client.id,
            client_name=client.name,
            helper_name=helper_name,
            service_date=service_date,
            service_code=service_code,
        ))
        db_session.commit()

    return _add


@pytest.fixture
def save_schedule(repository):
    """Persist a schedule for a client with sensible defaults."""

    def _save(client: CareClientSchema, doc_type: str, **fields) -> DocumentScheduleSchema:
        schedule = DocumentScheduleSchema(care_client_id=client.id, doc_type=doc_type, **fields)
        return repository.save_schedule(schedule)

    return _save


@pytest.fixture
def api_client(session_factory, generator):
    """TestClient wired to the in-memory database and the fake generator."""

    def _override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_document_generator] = lambda: generator
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

