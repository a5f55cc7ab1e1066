"""
Runner de migraciones con engine async.

La URL sale de Settings.DATABASE_URL salvo que se pase otra con
`alembic -x db_url=sqlite+aiosqlite:///./local.db upgrade head`.
"""

import asyncio
import logging
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from app.config import get_settings
from app.database import Base

# Registra las tablas de la clínica en Base.metadata
from app.models import (  # noqa: F401
    Appointment, AuditLog, Complaint, Formula, Status, User,
)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

database_url = context.get_x_argument(as_dictionary=True).get(
    "db_url", get_settings().DATABASE_URL
)
config.set_main_option("sqlalchemy.url", database_url)

target_metadata = Base.metadata


def _skip_empty_autogenerate(context_, revision, directives) -> None:
    """No genera archivos de revisión vacíos con --autogenerate."""
    if getattr(config.cmd_opts, "autogenerate", False):
        script = directives[0]
        if script.upgrade_ops.is_empty():
            directives[:] = []
            logger.info("Sin cambios en los modelos; no se genera revisión")


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        process_revision_directives=_skip_empty_autogenerate,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emite el SQL de las migraciones sin conectarse."""
    _configure(
        url=database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    # SQLite no soporta ALTER TABLE completo: usar batch mode
    _configure(
        connection=connection,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
