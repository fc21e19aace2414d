"""
Alembic environment for the screening service's schema.

The screening tables live in a database shared with the volunteer and
opportunity subsystems. This service owns only ``background_checks``; the
provider, requirement and volunteer tables are mapped for reads and kept out
of autogenerate. Revision bookkeeping goes to ``screening_alembic_version`` so
it never collides with another subsystem's ``alembic_version`` row.

The database URL comes from ``settings.database_url`` unless one is passed on
the command line::

    alembic -x database_url=postgresql+asyncpg://... upgrade head
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from screening.core.config import settings
from screening.models import Base

VERSION_TABLE = "screening_alembic_version"
OWNED_TABLES = frozenset({"background_checks"})

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

config.set_main_option(
    "sqlalchemy.url",
    context.get_x_argument(as_dictionary=True).get("database_url", settings.database_url),
)


def include_object(object, name, type_, reflected, compare_to):
    """Restrict autogenerate to tables this service owns (and their indexes)."""
    if type_ == "table":
        return name in OWNED_TABLES
    table = getattr(object, "table", None)
    return table is None or table.name in OWNED_TABLES


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=Base.metadata,
        include_object=include_object,
        version_table=VERSION_TABLE,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL to stdout instead of executing it."""
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync_migrations(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_sync_migrations)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
