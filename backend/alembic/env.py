from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from nova.db import DATABASE_URL
from nova.models import Base


# Alembic Config object, which provides access to the values within the .ini file.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# target_metadata is required for 'autogenerate' support.
targetMetadata = Base.metadata


def getDatabaseUrl() -> str:
    """目的: アプリ本体と同じDB接続URL（DATABASE_URL）をAlembicでも使う。"""
    return DATABASE_URL


def useBatchMode(url: str) -> bool:
    # SQLite は ALTER TABLE が限定的なので batch モードで移行する
    return url.startswith("sqlite")


def runMigrationsOffline() -> None:
    """目的: DBへ接続せずに、SQLスクリプトとしてマイグレーションを出力する。"""
    url = getDatabaseUrl()
    context.configure(
        url=url,
        target_metadata=targetMetadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=useBatchMode(url),
    )

    with context.begin_transaction():
        context.run_migrations()


def runMigrationsOnline() -> None:
    """目的: DBへ接続して、オンラインでマイグレーションを適用する。"""
    url = getDatabaseUrl()
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = url

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=targetMetadata,
            compare_type=True,
            render_as_batch=useBatchMode(url),
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    runMigrationsOffline()
else:
    runMigrationsOnline()
