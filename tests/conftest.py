import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from core.game_manager import GameManager

import models  # noqa: F401


@pytest.fixture
def engine():
    # One shared in-memory database per test
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def table(db):
    return GameManager.create_table(db, "Friday Night", created_by="host-1")


@pytest.fixture
def game(db, table):
    game, _ = GameManager.create_game(db, table.id, host_id="host-1")
    return game


@pytest.fixture
def seat(db, game):
    """A registered player sitting in `game` with 100"""
    return GameManager.add_participant(db, game.id, "Alice", 100, user_id="alice")


@pytest.fixture
def open_session(tmp_path):
    """
    Sessions on separate connections to one SQLite file, so each one stands
    in for a different device with its own snapshot
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    opened = []

    def _open():
        session = factory()
        opened.append(session)
        return session

    yield _open

    for session in opened:
        session.close()
    engine.dispose()
