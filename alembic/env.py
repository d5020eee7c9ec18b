"""Alembic environment for the BookOps schema.

The target URL is always BOOKOPS_DATABASE_URL from bookops.config; the value
in alembic.ini is only a placeholder.  Production runs on asyncpg, so online
migrations open an async engine and hand a sync connection to Alembic.

SQLite (local runs against the aiosqlite URL) cannot ALTER most columns in
place, so migrations render in batch mode there.  The schema relies on
dialect-neutral ``Uuid`` and ``JSON`` columns for the same reason.
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

from bookops.config import settings
from bookops.db.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

config.set_main_option("sqlalchemy.url", settings.database_url)
target_metadata = Base.metadata


def _configure(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_online() -> None:
    # One unpooled connection per migration command
    engine = create_async_engine(settings.database_url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_configure)
    finally:
        await engine.dispose()


def _migrate_offline() -> None:
    """Emit the schema as SQL without connecting (``alembic upgrade --sql``)."""
    context.configure(
        url=settings.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=settings.database_url.startswith("sqlite"),
    )
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    _migrate_offline()
else:
    asyncio.run(_migrate_online())
