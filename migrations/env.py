import asyncio
import logging
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from app import models  # noqa: F401  registers tables on Base.metadata
from app.db.base import Base
from app.db.url import normalize_database_url
from app.models.unified_application import loan_applications_unified

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata

# Views are written by hand in revisions; autogenerate must not try to create or drop them.
MANAGED_VIEWS = {loan_applications_unified.name}


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    return not (type_ == "table" and name in MANAGED_VIEWS)


def skip_empty_revisions(context_, revision, directives) -> None:
    if getattr(config.cmd_opts, "autogenerate", False) and directives[0].upgrade_ops.is_empty():
        directives[:] = []
        logger.info("No schema changes detected; revision not written")


def _get_database_url() -> str:
    """DATABASE_URL wins over alembic.ini so deploys and the app share one setting."""
    env_url = os.getenv("DATABASE_URL", "").strip()
    return normalize_database_url(env_url or config.get_main_option("sqlalchemy.url") or "")


config.set_main_option("sqlalchemy.url", _get_database_url())

_configure_opts = {
    "target_metadata": target_metadata,
    "compare_type": True,
    "include_object": include_object,
    "process_revision_directives": skip_empty_revisions,
}


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_opts,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    context.configure(connection=connection, **_configure_opts)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
