"""Alembic environment configuration.

References SQLAlchemy metadata from allyhub.models.database:Base and supports
both offline and online migrations. Alembic runs synchronously, so async driver
URLs are mapped to their sync counterparts (asyncpg -> psycopg default,
aiosqlite -> pysqlite).
"""
from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool, create_engine

from allyhub.core.config import get_database_url
from allyhub.models.database import Base

config = context.config

# Interpret the config file for Python logging when alembic.ini is used.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

_SYNC_DRIVERS = {
    "postgresql+asyncpg": "postgresql",
    "sqlite+aiosqlite": "sqlite",
}


def get_url() -> str:
    url = get_database_url()
    for async_prefix, sync_prefix in _SYNC_DRIVERS.items():
        if url.startswith(async_prefix):
            return sync_prefix + url[len(async_prefix):]
    return url


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
