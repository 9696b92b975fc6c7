import pytest
import os
import uuid
from pytest_postgresql import factories
from pytest_postgresql.janitor import DatabaseJanitor
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from models import Base
from config import LoaderSettings
from store import MemoryStore
from library.loader import CatalogLoader
from tests.mocks.library import FakeMediaSource, FakePermission, FakeClock, FAST_SETTINGS

# Single PostgreSQL instance for the entire test session, only started by `db` tests
postgresql_proc = factories.postgresql_proc(port=None)


@pytest.fixture
def store():
    return MemoryStore()

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def permission():
    return FakePermission()

@pytest.fixture
def alerts():
    return []

@pytest.fixture
async def make_loader(store, permission, clock, alerts):
    """Build loaders against the shared fakes; every loader is closed after the test."""
    loaders = []

    def _make(media: FakeMediaSource, settings: LoaderSettings = FAST_SETTINGS) -> CatalogLoader:
        loader = CatalogLoader(store, media, permission,
                               settings=settings,
                               clock=clock,
                               on_alert=lambda title, message: alerts.append((title, message)))
        loaders.append(loader)
        return loader

    yield _make

    for loader in loaders:
        await loader.close()


@pytest.fixture(scope="function")
async def isolated_test_db(postgresql_proc):
    """Create isolated database per test."""
    test_id = str(uuid.uuid4())[:8]
    worker_id = os.environ.get('PYTEST_XDIST_WORKER', 'main')
    db_name = f"test_db_{worker_id}_{test_id}"

    janitor = DatabaseJanitor(
        user=postgresql_proc.user,
        host=postgresql_proc.host,
        port=postgresql_proc.port,
        dbname=db_name,
        version=postgresql_proc.version,
    )
    janitor.init()

    connection_str = (
        f"postgresql+asyncpg://{postgresql_proc.user}:@"
        f"{postgresql_proc.host}:{postgresql_proc.port}/{db_name}"
    )

    overrides = {"TEST_MODE": "true",
                 "TEST_DATABASE_NAME": db_name,
                 "DB_HOST": postgresql_proc.host,
                 "DB_PORT": str(postgresql_proc.port),
                 "DB_USER": postgresql_proc.user,
                 "DB_PASSWORD": ""}
    previous = {key: os.environ.get(key) for key in overrides}
    os.environ.update(overrides)

    # Reset DatabaseManager to pick up new environment
    from db import DatabaseManager
    await DatabaseManager.cleanup_all_instances()

    engine = create_async_engine(connection_str, poolclass=NullPool, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine, db_name

    await engine.dispose()
    await DatabaseManager.cleanup_all_instances()
    janitor.drop()

    for key, old_val in previous.items():
        if old_val is not None:
            os.environ[key] = old_val
        else:
            os.environ.pop(key, None)

@pytest.fixture(scope="function")
async def db_session(isolated_test_db):
    engine, db_name = isolated_test_db

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session() as session:
        yield session

@pytest.fixture
async def test_db(isolated_test_db):
    """Simple test database fixture."""
    engine, db_name = isolated_test_db
    yield db_name
