# backend/catalog_service/tests/conftest.py

import logging
import os
import tempfile

# Point the app at a throwaway SQLite file unless a real database is configured.
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), "catalog_service_test.db"),
)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402

from app.db import Base, SessionLocal, engine  # noqa: E402
from app.main import app, schema_probe  # noqa: E402

# Suppress noisy logs from SQLAlchemy/FastAPI during tests for cleaner output
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
logging.getLogger("fastapi").setLevel(logging.WARNING)


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(scope="function")
def fresh_tables():
    """Recreate all tables and re-run the column probe before each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    schema_probe.refresh()
    schema_probe.ensure_columns()
    yield schema_probe.snapshot


@pytest.fixture(scope="function")
def db_session(fresh_tables):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture(scope="function")
def bare_engine(tmp_path):
    """A SQLite database holding only the base columns of the products table."""
    bare = create_engine(
        f"sqlite:///{tmp_path / 'bare.db'}", connect_args={"check_same_thread": False}
    )

    @event.listens_for(bare, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=bare)
    yield bare
    bare.dispose()
