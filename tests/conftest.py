import os

import pytest

# Must be set before marketplace.database builds its engine
os.environ.setdefault("MARKETPLACE_DATABASE_URL", "sqlite:///./test_marketplace.db")

from fastapi.testclient import TestClient  # noqa: E402

from marketplace.database import Base, engine  # noqa: E402
from marketplace.main import app  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def cleanup_database():
    """Clean up database before running tests"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="session")
def client():
    return TestClient(app)
