import os

# Settings are read at import time; give the app a throwaway config
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ALGORITHM", "HS256")
os.environ["RATE_LIMIT_ENABLED"] = "false"

# Imports for testing tools
import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Import your application code
from stayfinder.main import app
from stayfinder.database import Base, get_db
from stayfinder.config import settings
from stayfinder.cancellation import CancellationWorkflow
from stayfinder.catalog import ListingCatalog
from stayfinder.ledger import BookingLedger
from stayfinder.locks import ListingLocks
from stayfinder import models

HOST_ID = 10
OTHER_HOST_ID = 11
GUEST_ID = 1
OTHER_GUEST_ID = 2


# --- Test Database Setup ---
@pytest.fixture(scope="function")
def engine():
    """A fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


# --- Core services ---
@pytest.fixture
def locks():
    return ListingLocks()


@pytest.fixture
def ledger(db_session, locks):
    return BookingLedger(db_session, locks)


@pytest.fixture
def workflow(db_session, locks):
    return CancellationWorkflow(db_session, locks)


@pytest.fixture
def catalog(db_session):
    return ListingCatalog(db_session)


@pytest.fixture
def make_listing(db_session):
    """Inserts a listing straight into the database."""
    def _make(host_id: int = HOST_ID, nightly_price: str = "100", max_guests: int = 4, title: str = "Cosy flat"):
        listing = models.Listing(
            host_id=host_id,
            title=title,
            description="Two rooms near the river",
            location="Lisbon",
            nightly_price=Decimal(nightly_price),
            max_guests=max_guests,
        )
        db_session.add(listing)
        db_session.commit()
        db_session.refresh(listing)
        return listing
    return _make


# --- Auth ---
def create_test_token(user_id: int = GUEST_ID, role: str = "user") -> str:
    """Creates a simple JWT for testing."""
    payload = {"sub": str(user_id), "role": role}
    token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return f"Bearer {token}"


@pytest.fixture
def auth_headers():
    """Returns a helper building headers for any user id."""
    def _headers(user_id: int = GUEST_ID, role: str = "user"):
        return {"Authorization": create_test_token(user_id, role)}
    return _headers


# --- API Test Client Fixture ---
@pytest.fixture(scope="function")
def client(session_factory):
    """Provides a TestClient wired to the per-test database."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
