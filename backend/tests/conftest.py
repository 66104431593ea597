"""
Configuration partagée pour tous les tests.

- client : API avec la BDD mockée (aucune connexion PostgreSQL), services patchés dans les tests.
- db_session : session SQLite en mémoire pour tester les services sur de vraies requêtes.
- api : API branchée sur db_session, authentification réelle par jeton.
"""

import os
import tempfile

os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="monecole-uploads-"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

from app.database import Base, get_db  # noqa: E402
from app.dependencies import get_current_actor  # noqa: E402
from app.main import app  # noqa: E402
from app.storage import get_object_store  # noqa: E402


@pytest.fixture
def client():
    """Client HTTP de test avec la BDD mockée."""
    mock_db = MagicMock()
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_object_store] = lambda: MagicMock()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def as_actor():
    """Authentifie les requêtes suivantes sous l'Actor fourni (sans jeton)."""
    def _set(actor):
        app.dependency_overrides[get_current_actor] = lambda: actor
        return actor
    return _set


@pytest.fixture
def db_session():
    """Base SQLite en mémoire, clés étrangères actives, schéma complet."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def api(db_session):
    """Client HTTP branché sur la base SQLite : authentification et services réels."""
    app.dependency_overrides[get_db] = lambda: db_session
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
