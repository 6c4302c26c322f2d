import os
from pathlib import Path

from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / ".env.test"
load_dotenv(env_file)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.auth.models.user import UserType  # noqa: E402
from app.core import redis as redis_module  # noqa: E402
from app.core.rate_limit import limiter  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db.session import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from tests.utils.factories import create_user_factory  # noqa: E402

# TEST_DB=postgres runs the suite against a throwaway Postgres container
USE_POSTGRES = os.getenv("TEST_DB") == "postgres"


@pytest.fixture(scope="session")
def postgres_container():
    from testcontainers.core.container import DockerContainer
    from testcontainers.core.waiting_utils import wait_for_logs

    container = DockerContainer("postgres:16")
    container.with_exposed_ports(5432)
    container.with_env("POSTGRES_USER", "test")
    container.with_env("POSTGRES_PASSWORD", "test")
    container.with_env("POSTGRES_DB", "test")

    container.start()
    wait_for_logs(container, "database system is ready to accept connections", timeout=30)

    yield container
    container.stop()


@pytest.fixture(scope="session")
def test_database_url(request):
    if not USE_POSTGRES:
        return "sqlite://"

    postgres_container = request.getfixturevalue("postgres_container")
    host = postgres_container.get_container_host_ip()
    port = postgres_container.get_exposed_port(5432)
    return f"postgresql://test:test@{host}:{port}/test"


def _create_sqlite_engine(url: str):
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs to leave transaction control to SQLAlchemy for SAVEPOINT to work
    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture(scope="session")
def test_engine(test_database_url):
    if test_database_url.startswith("sqlite"):
        engine = _create_sqlite_engine(test_database_url)
    else:
        engine = create_engine(test_database_url)

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="session")
def test_session_local(test_engine):
    return sessionmaker(bind=test_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(test_session_local):
    session = test_session_local()

    session.commit = session.flush

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(autouse=True)
def no_redis():
    redis_module.redis_client = None
    redis_module.event_loop = None
    yield
    redis_module.redis_client = None
    redis_module.event_loop = None


@pytest.fixture
async def test_app(db_session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False

    yield app

    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
async def test_client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as client:
        yield client


@pytest.fixture
def alice(db_session):
    return create_user_factory(
        db_session, email="alice@example.com", name="Alice", user_type=UserType.FREELANCER
    )


@pytest.fixture
def bob(db_session):
    return create_user_factory(
        db_session, email="bob@example.com", name="Bob", user_type=UserType.EMPLOYER
    )


@pytest.fixture
def carol(db_session):
    return create_user_factory(db_session, email="carol@example.com", name="Carol")


@pytest.fixture
def test_admin(db_session):
    return create_user_factory(db_session, email="admin@example.com", role="admin")


def _token_for(user) -> str:
    return create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})


@pytest.fixture
def alice_token(alice):
    return _token_for(alice)


@pytest.fixture
def bob_token(bob):
    return _token_for(bob)


@pytest.fixture
def carol_token(carol):
    return _token_for(carol)


@pytest.fixture
def test_admin_token(test_admin):
    return _token_for(test_admin)
