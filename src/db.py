import os
import sys
import asyncio
import contextlib
import subprocess
from typing import Optional, AsyncGenerator, Dict

from sqlalchemy import URL, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

import traceback
import logging
LOGGER = logging.getLogger(__name__)

from dotenv import load_dotenv
load_dotenv()

POOL_SIZE = 10


def database_name() -> str:
    if test_db := os.environ.get("TEST_DATABASE_NAME"):
        return test_db
    if os.getenv("TEST_MODE"):
        return "test_db"
    return os.environ.get("DB_NAME", "music_app")


def database_url() -> URL:
    return URL.create(drivername='postgresql+asyncpg',
                      username=os.environ.get("DB_USER", "postgres"),
                      password=os.environ.get("DB_PASSWORD", ""),
                      host=os.environ.get("DB_HOST", "localhost"),
                      port=int(os.environ.get("DB_PORT", "5432")),
                      database=database_name())


class DatabaseManager:
    """One engine per process. The pool never grows past POOL_SIZE connections;
       sessions beyond that wait for a free connection instead of failing."""

    _instances: Dict[int, 'DatabaseManager'] = {}  # PID -> manager

    def __new__(cls) -> 'DatabaseManager':
        pid = os.getpid()
        if pid not in cls._instances:
            instance = super().__new__(cls)
            instance._engine: Optional[AsyncEngine] = None
            instance._sessions: Optional[async_sessionmaker] = None
            cls._instances[pid] = instance
        return cls._instances[pid]

    @property
    def initialized(self) -> bool:
        return self._sessions is not None

    async def initialize(self) -> None:
        if self.initialized:
            return

        url = database_url()
        LOGGER.info(f"Connecting to '{url.database}' on {url.host}:{url.port} (PID: {os.getpid()}).")
        try:
            self._engine = create_async_engine(
                url,
                poolclass=AsyncAdaptedQueuePool,
                pool_size=POOL_SIZE,
                max_overflow=0,
                pool_timeout=None,
                pool_pre_ping=True,
                pool_recycle=3600,
                connect_args={
                    "ssl": False,
                    "server_settings": {"application_name": f"music_app_pid_{os.getpid()}"},
                    "command_timeout": 60,
                }
            )

            async with self._engine.begin() as conn:
                await conn.execute(text("SELECT 1"))

            self._sessions = async_sessionmaker(bind=self._engine,
                                                class_=AsyncSession,
                                                expire_on_commit=False)
            LOGGER.info(f"Database '{url.database}' ready.")
        except Exception as e:
            LOGGER.error(f"Could not initialize database: {traceback.format_exc()}")
            await self.cleanup()
            raise ConnectionError(f"Database initialization failed: {str(e)}") from e

    @contextlib.asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on a clean exit and rolls back on any error."""
        await self.initialize()

        session = self._sessions()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            LOGGER.error(f"Session error, rolled back: {traceback.format_exc()}")
            raise
        finally:
            await session.close()

    async def cleanup(self) -> None:
        if self._engine:
            await self._engine.dispose()
            LOGGER.info(f"Database engine disposed (PID: {os.getpid()}).")

        self._engine = None
        self._sessions = None
        self._instances.pop(os.getpid(), None)

    async def setup_tables(self) -> None:
        """Bring the schema to the latest migration."""
        await self.initialize()

        try:
            result = subprocess.run([sys.executable, "-m", "alembic", "upgrade", "head"],
                                    check=True, capture_output=True, text=True)
        except subprocess.CalledProcessError as e:
            LOGGER.error(f"Alembic upgrade failed: {e.stderr}")
            raise

        LOGGER.info(f"Alembic upgrade completed: {result.stdout}")

    @classmethod
    async def cleanup_all_instances(cls) -> None:
        for instance in list(cls._instances.values()):
            await instance.cleanup()
        cls._instances.clear()


def get_db_manager() -> DatabaseManager:
    return DatabaseManager()

def get_session():
    return get_db_manager().get_session()


if __name__ == "__main__":
    async def main():
        prompt = "This will migrate the PROD database. Continue? "
        if "-t" in sys.argv or "--test" in sys.argv:
            os.environ["TEST_MODE"] = "true"
            prompt = "This will migrate the TEST database. Continue? "

        if not input(prompt).lower().startswith("y"):
            return

        try:
            await get_db_manager().setup_tables()
        finally:
            await get_db_manager().cleanup()

    asyncio.run(main())
