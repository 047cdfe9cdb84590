"""Pytest configuration and shared fixtures."""
import os

# Keep the application module from creating a database file on import
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from riskreg.config import WorkflowPolicy
from riskreg.database import Base, get_db
from riskreg.models.artifact import Actor
# Import models to register them with SQLAlchemy Base
from riskreg.models.audit import VersionEntry  # noqa: F401
from riskreg.models.domain import Risk, RiskRegister  # noqa: F401
from riskreg.models.enums import ArtifactKind
from riskreg.models.version import VersionNumber
from riskreg.services.register import RegisterService
from riskreg.services.workflow import WorkflowEngine


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    # One shared connection so the TestClient thread sees the same database
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    engine.dispose()


# Actors
@pytest.fixture
def editor():
    return Actor(identity="alice", role_label="Risk Owner")


@pytest.fixture
def reviewer():
    return Actor(identity="rita", role_label="COO")


@pytest.fixture
def approver():
    return Actor(identity="abe", role_label="CEO")


@pytest.fixture
def admin():
    return Actor(identity="root", role_label="Global Admin", is_global_admin=True)


@pytest.fixture
def outsider():
    """No assignment, no admin capability, no edit rights."""
    return Actor(identity="vic", role_label="Viewer", can_edit=False)


# Engines
@pytest.fixture
def policy():
    """Artifacts start at 1.0 so version arithmetic reads naturally in tests."""
    return WorkflowPolicy(initial_version=VersionNumber(1, 0))


@pytest.fixture
def item_engine(policy):
    return WorkflowEngine(ArtifactKind.ITEM, policy)


@pytest.fixture
def document_engine(policy):
    return WorkflowEngine(ArtifactKind.DOCUMENT, policy)


@pytest.fixture
def draft_item(item_engine, editor, reviewer, approver):
    """A risk at 1.0 in DRAFT with reviewer and approver assigned."""
    result = item_engine.create(
        "risk-1", editor, "Initial draft",
        reviewer_ref=reviewer.identity, approver_ref=approver.identity, scope="org-1"
    )
    assert result.ok
    return result.snapshot


@pytest.fixture
def approved_item(item_engine, draft_item, editor, reviewer, approver):
    """The draft risk submitted with a minor bump and approved at both levels: 1.1 APPROVED."""
    submitted = item_engine.submit_for_review(draft_item, editor, "initial", "MINOR").snapshot
    first = item_engine.first_approval(submitted, reviewer).snapshot
    result = item_engine.second_approval(first, approver)
    assert result.ok
    return result.snapshot


# Persistence
@pytest.fixture
def service(db_session, policy):
    return RegisterService(db_session, policy)


@pytest.fixture
def client(db_session, policy):
    from riskreg.api.routes import get_policy
    from riskreg.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_policy] = lambda: policy
    yield TestClient(app)
    app.dependency_overrides.clear()
