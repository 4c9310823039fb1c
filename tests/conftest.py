"""Pytest configuration and fixtures."""
import os
import uuid
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config as AlembicConfig
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Ensure the application uses a dedicated SQLite database during tests.
# SQLite ignores SELECT ... FOR UPDATE, so row-lock serialization is only
# exercised by the postgres-marked tests (see test_concurrent_settlement.py).
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["ENVIRONMENT"] = "test"

from rankmatch.config import get_settings
from rankmatch.database import Base
import rankmatch.models  # noqa: F401  registers every table on Base.metadata
from rankmatch.services.reservation_monitor import get_reservation_monitor
from rankmatch.utils.tokens import create_access_token


BASE_DIR = Path(__file__).resolve().parent.parent
TEST_DB_PATH = BASE_DIR / "test.db"
settings = get_settings()


@pytest.fixture(scope="session", autouse=True)
def apply_migrations():
    """Apply database migrations against the test database."""
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()

    alembic_cfg = AlembicConfig(str(BASE_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(BASE_DIR / "rankmatch" / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    alembic_cfg.attributes["configure_logger"] = False
    command.upgrade(alembic_cfg, "head")

    yield

    if TEST_DB_PATH.exists():
        try:
            TEST_DB_PATH.unlink()
        except PermissionError:
            # Still in use on Windows; removed on the next run
            pass


@pytest.fixture
async def test_engine():
    """Create test database engine using the same database as migrations."""
    engine = create_async_engine(settings.database_url, echo=False, pool_pre_ping=True)

    # Every test starts from empty tables
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()
        await session.close()


@pytest.fixture(autouse=True)
def reset_reservation_monitor():
    """The in-process monitor is shared; start every test with it empty."""
    monitor = get_reservation_monitor()
    monitor.clear()
    yield monitor
    monitor.clear()


@pytest.fixture
async def test_app(session_factory):
    """Create test app with database override."""
    from rankmatch.main import app
    from rankmatch.database import get_db

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as http_client:
        yield http_client


@pytest.fixture
async def player_factory(db_session):
    """Factory for creating participants with a given rating and balances."""
    from rankmatch.services import PlayerService

    player_service = PlayerService(db_session)

    async def _create_player(
        username: str | None = None,
        *,
        elo: int = 1200,
        gem: int = 100,
        coin: int = 0,
    ):
        # UUID suffix keeps usernames unique across tests
        unique_id = uuid.uuid4().hex[:8]
        return await player_service.create_player(
            username=username or f"player{unique_id}",
            email=f"player{unique_id}@example.com",
            elo=elo,
            gem=gem,
            coin=coin,
        )

    return _create_player


@pytest.fixture
def auth_headers():
    """Bearer headers for a participant."""

    def _headers(player) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(player.player_id, player.username)}"}

    return _headers
