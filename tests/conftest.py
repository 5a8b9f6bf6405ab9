"""Shared fixtures: in-memory database, seeded caller, fake inference clients and an API client."""
import os
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure repository root is on sys.path for module resolution
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure the service BEFORE importing main
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_STYLE"] = "human"
os.environ["HUGGINGFACE_API_KEY"] = ""
os.environ["SUPABASE_URL"] = ""

from classification.inference_client import InferenceError  # noqa: E402
from classification.models import Base, Board, BoardMember, User  # noqa: E402

# Wednesday
TODAY = date(2024, 1, 10)


class FakeInferenceClient:
    """Returns canned generated text, or raises a canned InferenceError."""

    def __init__(self, text: str = "", error: Optional[InferenceError] = None):
        self.text = text
        self.error = error
        self.prompts: List[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text


class FakeStorage:
    """Stands in for StorageClient; returns fixed bytes or None."""

    def __init__(self, data: Optional[bytes] = None):
        self.data = data
        self.requested: List[str] = []

    def download(self, attachment_id: str) -> Optional[bytes]:
        self.requested.append(attachment_id)
        return self.data


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db_session) -> User:
    u = User(id="user-1", email="owner@example.com", name="Owner")
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture
def boards(db_session, user) -> List[Board]:
    ops = Board(name="Operations", description="Day to day work")
    finance = Board(name="Finance", description="Bills and payments")
    db_session.add_all([ops, finance])
    db_session.flush()
    db_session.add_all([
        BoardMember(board_id=ops.id, user_id=user.id),
        BoardMember(board_id=finance.id, user_id=user.id),
    ])
    db_session.commit()
    return [ops, finance]


@pytest.fixture
def unavailable_llm() -> FakeInferenceClient:
    return FakeInferenceClient(error=InferenceError("network_error", "connection refused"))


@pytest.fixture
def api(session_factory, user):
    """TestClient with the database, model and storage replaced by fakes."""
    from fastapi.testclient import TestClient

    import main
    from classification.auth import issue_token
    from classification.positions import MaxPlusOneAllocator

    state = {
        "client": FakeInferenceClient(error=InferenceError("network_error", "down")),
        "storage": FakeStorage(),
    }

    def _db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[main.get_db] = _db
    main.app.dependency_overrides[main.get_inference_client] = lambda: state["client"]
    main.app.dependency_overrides[main.get_storage] = lambda: state["storage"]
    main.app.dependency_overrides[main.get_allocator] = lambda: MaxPlusOneAllocator()

    client = TestClient(main.app)
    client.headers["Authorization"] = f"Bearer {issue_token(user.id, main.settings)}"
    client.fakes = state
    yield client
    main.app.dependency_overrides.clear()
