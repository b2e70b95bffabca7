"""
Entorno de Alembic para las tablas del servicio de sincronizacion.

- La URL sale de settings (asyncpg se reemplaza por psycopg: las
  migraciones corren en modo sincrono)
- Autogenerate solo considera tablas declaradas en los modelos: la base de
  operaciones es compartida y tiene tablas de otros servicios
"""
import sys
from pathlib import Path
from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT_DIR))

from app.core.config import settings
from app.infrastructure.database.session import Base
from app.infrastructure.database import models  # noqa: F401

config = context.config

config.set_main_option(
    "sqlalchemy.url",
    settings.effective_database_url.replace("+asyncpg", "+psycopg"),
)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def include_object(obj, name, type_, reflected, compare_to):
    """Ignora tablas reflejadas que no pertenecen a este servicio."""
    if type_ == "table" and reflected and compare_to is None:
        return False
    return True


def run_migrations_offline() -> None:
    """Genera el SQL sin conectarse (para revisar antes de aplicar)."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
