import os
import tempfile
from unittest.mock import MagicMock, patch

# Keep the application's own engine away from the working directory
_tmp_dir = tempfile.mkdtemp(prefix="inventory-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp_dir, 'app.db')}"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from inventory_tracker.main import app
from inventory_tracker.database import Base, get_db, get_session_factory


# File-backed SQLite so CSV import workers can use their own connections
SQLALCHEMY_DATABASE_URL = f"sqlite:///{os.path.join(_tmp_dir, 'test.db')}"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for testing."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def override_get_session_factory():
    """Hand import workers the test session factory."""
    return TestingSessionLocal


# Override the dependencies
app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_session_factory] = override_get_session_factory


@pytest.fixture(autouse=True)
def cache():
    """Replace the Redis cache with a mock that always misses."""
    mock_cache = MagicMock()
    mock_cache.get.return_value = None
    with patch("inventory_tracker.services.product_service.cache_service", mock_cache):
        yield mock_cache


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    # Create tables
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    # Drop tables after test
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create database session for direct database access in tests."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_product(client):
    """Create a product through the API and return its id."""
    def _make(name="Widget", stock=10, **fields):
        response = client.post("/api/products", json={"name": name, "stock": stock, **fields})
        assert response.status_code == 201, response.text
        return response.json()["id"]
    return _make


@pytest.fixture
def session_factory():
    """Session factory bound to the test database."""
    return TestingSessionLocal
