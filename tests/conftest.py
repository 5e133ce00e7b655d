"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import wadi.models  # noqa: F401
from wadi.database import Base, get_db, get_session_factory
from wadi.dependencies import get_connection_registry, get_identity_client, get_provider
from wadi.errors import AuthenticationError
from wadi.models import Project
from wadi.services.connections import InMemoryConnectionRegistry


class FakeEmbedder:
    """Returns canned vectors per text, or a default vector."""

    def __init__(self, vectors=None, default=None):
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.calls = []

    def embed(self, text, model=None):
        self.calls.append(text)
        return list(self.vectors.get(text, self.default))


class FakeProvider:
    """Stands in for ProviderClient.

    ``error`` is raised by ``complete`` and, when ``fail_after`` is None,
    before the first stream chunk; otherwise after ``fail_after`` chunks.
    """

    def __init__(self, output="Hello world", chunks=None, error=None, fail_after=None, embedder=None):
        self.output = output
        self.chunks = ["Hello", " ", "world"] if chunks is None else chunks
        self.error = error
        self.fail_after = fail_after
        self.embedder = embedder or FakeEmbedder()
        self.calls = []

    def complete(self, messages, model):
        self.calls.append({"messages": messages, "model": model, "stream": False})
        if self.error:
            raise self.error
        return self.output

    def complete_stream(self, messages, model):
        self.calls.append({"messages": messages, "model": model, "stream": True})
        if self.error and self.fail_after is None:
            raise self.error
        for i, chunk in enumerate(self.chunks):
            if self.error and i == self.fail_after:
                raise self.error
            yield chunk

    def embed(self, text, model=None):
        return self.embedder.embed(text, model)


class FakeIdentity:
    def __init__(self, tokens=None):
        self.tokens = tokens or {"token-alice": "alice", "token-bob": "bob"}

    def get_user_id(self, token):
        if not token:
            raise AuthenticationError("Missing or invalid authorization header")
        if token not in self.tokens:
            raise AuthenticationError("Invalid token")
        return self.tokens[token]


@pytest.fixture(scope="function")
def session_factory():
    """Create a fresh in-memory database for each test."""
    # StaticPool keeps one connection so every session sees the same database
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)

    engine.dispose()


@pytest.fixture(scope="function")
def test_db(session_factory):
    """Create a test database session for each test."""
    db = session_factory()

    yield db

    db.close()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def provider(embedder):
    return FakeProvider(embedder=embedder)


@pytest.fixture
def project(test_db):
    project = Project(user_id="alice", name="Test project")
    test_db.add(project)
    test_db.commit()
    return project


@pytest.fixture
def registry():
    return InMemoryConnectionRegistry()


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer token-alice"}


@pytest.fixture
def client(session_factory, provider, registry):
    """TestClient wired to the test database, fake provider and fake identity."""
    from wadi.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_provider] = lambda: provider
    app.dependency_overrides[get_identity_client] = lambda: FakeIdentity()
    app.dependency_overrides[get_connection_registry] = lambda: registry

    yield TestClient(app)

    app.dependency_overrides.clear()
