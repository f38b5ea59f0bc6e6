"""
Alembic environment configuration.

WHY: Migrations run against the same DATABASE_URL as the service, through
the async engine, with QuickDesk's model metadata as the autogenerate
target.
"""

from logging.config import fileConfig
import asyncio

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

from quickdesk.core.config import settings
from quickdesk.models.base import Base

# Registers every table on Base.metadata
import quickdesk.models  # noqa: F401


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

config.set_main_option("sqlalchemy.url", settings.async_database_url)

target_metadata = Base.metadata


def _configure_options() -> dict:
    """Options shared by offline and online runs."""
    return dict(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        # ALTER TABLE support on SQLite (local runs)
        render_as_batch=settings.is_sqlite,
    )


def run_migrations_offline() -> None:
    """
    Emit the migration SQL without connecting.

    WHY: Lets an operator review the DDL before applying it to production.
    """
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(),
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, **_configure_options())

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Apply migrations over an asyncpg/aiosqlite connection."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
