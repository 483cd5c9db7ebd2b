"""
Alembic environment for the gateway key store (async).

  • The URL comes from app.core.config, never from alembic.ini, so the
    same DATABASE_URL drives the app, the seed script and migrations.
  • target_metadata is Base.metadata with every model imported, so
    `alembic revision --autogenerate` sees the whole schema.
  • compare_type catches column type/length changes (key and id widths
    matter here).
  • SQLite (tests, local dev) gets render_as_batch so ALTERs work there.
"""

import asyncio
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import async_engine_from_config

from app.core.config import settings
from app.core.database import Base

# Every model module registers its table on Base.metadata
import app.models.account  # noqa: F401
import app.models.api_key  # noqa: F401
import app.models.tier  # noqa: F401
import app.models.upstream_credential  # noqa: F401
import app.models.usage_log  # noqa: F401

config = context.config
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _context_options() -> dict[str, Any]:
    is_sqlite = make_url(settings.DATABASE_URL).get_backend_name() == "sqlite"
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": is_sqlite,
    }


# ── Offline: emit SQL without connecting ────────────────────
def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_options(),
    )
    with context.begin_transaction():
        context.run_migrations()


# ── Online: async engine, sync migration body ───────────────
def _run_with_connection(connection: Connection) -> None:
    context.configure(connection=connection, **_context_options())
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
            await connection.run_sync(_run_with_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
