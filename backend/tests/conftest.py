import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from measure_tracker.db.session import get_db
from measure_tracker.main import app
from measure_tracker.models import Base
from measure_tracker.routers.measure_import import get_preview_store
from measure_tracker.services.measure_import.config_loader import load_system_config
from measure_tracker.services.measure_import.preview_store import PreviewStore
from measure_tracker.services.measure_import.types import ExistingRecord, TransformedRow


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT to nest correctly.
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store():
    return PreviewStore()


@pytest.fixture
def client(session, store):
    def _get_db():
        yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_preview_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="session")
def hill_config():
    return load_system_config("hill")


def _make_row(**overrides) -> TransformedRow:
    data = {
        "member_name": "Doe, Jane",
        "member_dob": "1960-03-15",
        "member_telephone": "(555) 123-4567",
        "member_address": "1 Main St",
        "request_type": "Quality",
        "quality_measure": "Diabetic Eye Exam",
        "measure_status": "Diabetic eye exam completed",
        "status_date": "2025-01-10",
        "source_row_index": 0,
        "source_measure_column": "Eye Exam Q2",
    }
    data.update(overrides)
    return TransformedRow(**data)


def _make_existing(**overrides) -> ExistingRecord:
    data = {
        "patient_id": 1,
        "measure_id": 10,
        "member_name": "Doe, Jane",
        "member_dob": "1960-03-15",
        "member_telephone": "(555) 123-4567",
        "member_address": "1 Main St",
        "request_type": "Quality",
        "quality_measure": "Diabetic Eye Exam",
        "measure_status": "Not Addressed",
        "owner_id": None,
        "owner_name": None,
    }
    data.update(overrides)
    return ExistingRecord(**data)


@pytest.fixture
def make_row():
    return _make_row


@pytest.fixture
def make_existing():
    return _make_existing
