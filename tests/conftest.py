"""Pytest configuration and shared fixtures."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tipline.config import Settings, get_settings
from tipline.database import Base, get_db
# Import models to register them with SQLAlchemy Base
from tipline.models import audit, domain  # noqa: F401
from tipline.models.domain import Agency
from tipline.models.enums import StaffRole
from tipline.services.defaults import seed_defaults
from tipline.services.reports import NewReport, ReportService
from tipline.services.staff import create_staff_user
from tipline.services.storage import StoredObject


class FakeStorage:
    """In-memory evidence store that remembers what it was given."""

    def __init__(self):
        self.objects = {}
        self.uploads = 0

    def upload(self, original_name, content_type, data):
        self.uploads += 1
        reference = f"mem://{self.uploads}/{original_name}"
        self.objects[reference] = data
        return StoredObject(reference=reference, content_type=content_type, original_name=original_name)

    def delete(self, reference):
        self.objects.pop(reference, None)


@pytest.fixture
def settings():
    """Low bcrypt cost keeps the suite fast; everything else is the default."""
    return Settings(bcrypt_rounds=4, lookup_pepper=None)


@pytest.fixture
def engine():
    # In-memory SQLite shared across threads for TestClient
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a fresh in-memory database, with sentinel rows, for each test."""
    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()
    seed_defaults(session)

    yield session

    session.close()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def service(db_session, settings, storage):
    return ReportService(db_session, settings=settings, storage=storage)


@pytest.fixture
def anonymous_report(service):
    """Create a basic anonymous report. Returns CreatedReport (report + plaintext password)."""
    return service.create_report(NewReport(
        title="Broken streetlight",
        description="vandalized",
        reporter_type="anonymous",
        location="Allen Avenue"
    ))


@pytest.fixture
def confidential_report(service):
    return service.create_report(NewReport(
        title="Illegal dumping",
        description="Trucks unloading waste at night",
        reporter_type="confidential",
        reporter_name="Ada Obi",
        reporter_email="ada@example.com",
        reporter_phone="+2348000000000"
    ))


@pytest.fixture
def works_agency(db_session):
    agency = Agency(name="Public Works", email="works@example.com")
    db_session.add(agency)
    db_session.commit()
    db_session.refresh(agency)
    return agency


@pytest.fixture
def admin_user(db_session):
    return create_staff_user(db_session, "admin", StaffRole.ADMIN, name="Site Admin")


@pytest.fixture
def agency_user(db_session, works_agency):
    return create_staff_user(db_session, "works1", StaffRole.AGENCY, name="Works Officer", agency=works_agency)


@pytest.fixture
def client(engine, db_session, settings, storage):
    """TestClient wired to the test database and the in-memory evidence store."""
    from tipline.api.routes import get_storage
    from tipline.main import app

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_storage] = lambda: storage

    # No context manager: the lifespan would create tables in the real database
    yield TestClient(app)

    app.dependency_overrides.clear()
