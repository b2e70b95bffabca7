"""
Engine y sesiones async de la base de operaciones.

Produccion usa PostgreSQL (asyncpg); los tests usan SQLite en memoria.
"""
from typing import AsyncGenerator, List
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.orm import declarative_base
from loguru import logger

from app.core.config import settings


# Base declarativa de tablas destino y tablas de control del sync
Base = declarative_base()


def _create_engine_args(database_url: str) -> dict:
    """
    Argumentos del engine segun el motor.
    PostgreSQL usa pool de conexiones y se identifica en pg_stat_activity.
    """
    args = {"echo": settings.DEBUG}

    if database_url.startswith("postgresql+asyncpg"):
        args.update({
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_pre_ping": True,
            "connect_args": {"server_settings": {"application_name": "tour-ops-sync"}},
        })
    elif database_url.startswith("sqlite"):
        args["connect_args"] = {"check_same_thread": False}

    return args


engine = create_async_engine(
    settings.effective_database_url,
    **_create_engine_args(settings.effective_database_url)
)

# autoflush=False: el storage adapter decide cuando escribir (commit por batch)
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependencia FastAPI: una sesion por request.

    Los adaptadores hacen commit por batch; aqui solo se revierte lo que
    haya quedado pendiente si el request falla.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def _missing_tables(sync_conn) -> List[str]:
    existing = set(inspect(sync_conn).get_table_names())
    return [name for name in Base.metadata.tables if name not in existing]


async def init_db() -> List[str]:
    """
    Crea las tablas que falten y retorna sus nombres.
    En produccion el esquema lo gestiona alembic; esto cubre desarrollo y CLI.
    """
    async with engine.begin() as conn:
        missing = await conn.run_sync(_missing_tables)
        await conn.run_sync(Base.metadata.create_all)
    if missing:
        logger.info(f"Tablas creadas: {', '.join(missing)}")
    return missing


async def close_db() -> None:
    await engine.dispose()
