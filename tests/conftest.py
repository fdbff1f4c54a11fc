from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from groove.coordinator import MutationCoordinator
from groove.db import get_db, init_db, make_engine, make_sessionmaker
from groove.main import app
from groove.queries import BoardQueries
from groove.storage import Repository


class Clock:
    """Manually advanced clock so time windows can be tested exactly."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = make_sessionmaker(engine)()
    yield session
    session.close()


@pytest.fixture
def repo(session):
    return Repository(session)


@pytest.fixture
def clock():
    return Clock(datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def coordinator(repo, clock):
    return MutationCoordinator(repo, clock=clock)


@pytest.fixture
def queries(repo, clock):
    return BoardQueries(repo, clock=clock)


@pytest.fixture
def owner(coordinator):
    return coordinator.register_account("olivia.owner@example.com", "Olivia", "Owner")


@pytest.fixture
def board(coordinator, owner):
    return coordinator.create_board(owner.id, "Launch plan")


@pytest.fixture
def default_column(repo, board):
    return repo.default_column(board.id)


def join(coordinator, board, owner, email, role="editor"):
    """Register ``email`` and make it a member of ``board`` with ``role``."""
    coordinator.invite_user(board.id, owner.id, email, role=role)
    return coordinator.register_account(email)


@pytest.fixture
def editor(coordinator, board, owner):
    return join(coordinator, board, owner, "eddie.editor@example.com")


@pytest.fixture
def second_editor(coordinator, board, owner):
    return join(coordinator, board, owner, "fran.fellow@example.com")


@pytest.fixture
def admin(coordinator, board, owner):
    return join(coordinator, board, owner, "ada.admin@example.com", role="admin")


@pytest.fixture
def client(engine):
    Session = make_sessionmaker(engine)

    def override_get_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
