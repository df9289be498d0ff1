from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from gamearena.api.deps import get_db
from gamearena.core.db import enable_sqlite_foreign_keys
from gamearena.main import app
from gamearena.models import AppRole, User
from gamearena.tests.utils.factories import create_user


@pytest.fixture(name="engine")
def engine_fixture():
    # One in-memory database per test, shared by every connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session) -> Generator[TestClient, None, None]:
    def get_db_override():
        return session

    app.dependency_overrides[get_db] = get_db_override
    # Not used as a context manager: the lifespan would seed the real database
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def superuser(session: Session) -> User:
    return create_user(session, is_superuser=True, full_name="Admin")


@pytest.fixture
def player(session: Session) -> User:
    return create_user(session, full_name="Player One", wallet_balance=100)


@pytest.fixture
def moderator(session: Session) -> User:
    return create_user(session, app_role=AppRole.MODERATOR, full_name="Mod")


@pytest.fixture
def creator(session: Session) -> User:
    return create_user(session, app_role=AppRole.CREATOR, full_name="Streamer")
