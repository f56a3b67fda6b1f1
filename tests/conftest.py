import os

os.environ.setdefault("ENV", "test")

import threading  # noqa: E402
from contextlib import contextmanager  # noqa: E402

import pytest  # noqa: E402
from faker import Faker  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import app.models  # noqa: E402,F401
from app.config import get_settings  # noqa: E402
from app.core.identity import IdentityVerifier  # noqa: E402
from app.db import Base, create_db_engine  # noqa: E402

pytest_plugins = [
    "tests.fixtures.tenant_fixtures",
    "tests.fixtures.conversation_fixtures",
    "tests.fixtures.realtime_fixtures",
]


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_maker(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db(session_maker):
    session = session_maker()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def session_factory(session_maker):
    """
    Stand-in for db_session() bound to the test database.

    The in-memory database is a single shared connection, so units of work
    from the threadpool take turns on it.
    """
    turn = threading.RLock()

    @contextmanager
    def factory():
        with turn:
            session = session_maker()
            try:
                yield session
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    return factory


@pytest.fixture(scope="session")
def faker():
    return Faker()


@pytest.fixture(scope="session")
def test_settings():
    return get_settings().model_copy(
        update={
            "jwt_access_secret": "test-secret-key-with-enough-length-for-hs256",
            "message_delivered_delay_ms": 10,
        }
    )


@pytest.fixture(scope="session")
def identity(test_settings):
    return IdentityVerifier(test_settings)
