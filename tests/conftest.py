"""
Fixtures compartidas: base SQLite en memoria con las tablas destino y
registros de corridas/canales aislados por test.
"""
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.application.services.progress_channel import ProgressChannelRegistry
from app.application.use_cases.sync_use_cases import SyncRunRegistry
from app.infrastructure.database.session import Base
from app.infrastructure.database import models  # noqa: F401


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    # StaticPool: una sola conexion, si no la base en memoria se pierde
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Sesion sobre las tablas destino, customers y tablas de control."""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def registry() -> SyncRunRegistry:
    """Registro de corridas propio del test (no el global del proceso)."""
    return SyncRunRegistry()


@pytest.fixture
def channels() -> ProgressChannelRegistry:
    return ProgressChannelRegistry()
