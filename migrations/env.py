"""Alembic environment for the notification core schema.

The database URL comes from ``MOMENT_NOTIFY_DATABASE_URL`` (or ``.env``); the
URL in ``alembic.ini`` is never used. Standard logging from Alembic and
SQLAlchemy is routed through loguru like the rest of the application.
"""

from alembic import context
from dotenv import load_dotenv
from loguru import logger
from sqlalchemy import engine_from_config, pool
from sqlmodel import SQLModel

load_dotenv()

from moment_notify.logging import redirect_std_logging, setup_logging, setup_sqlalchemy_logging  # noqa: E402
from moment_notify.models import db_model  # noqa: F401, E402  (registers the tables on SQLModel.metadata)
from moment_notify.settings import get_settings  # noqa: E402

settings = get_settings()
setup_logging(settings.log_level, json_logs=settings.log_json)
redirect_std_logging(["alembic", "alembic.runtime.migration"], "INFO")

# Statement logging at DEBUG and below
SQL_ECHO = settings.sql_log or settings.log_level in ("DEBUG", "TRACE")
if SQL_ECHO:
    setup_sqlalchemy_logging()

config = context.config

if not settings.database_url:
    raise RuntimeError("MOMENT_NOTIFY_DATABASE_URL must be set to run migrations")
config.set_main_option("sqlalchemy.url", settings.database_url)

target_metadata = SQLModel.metadata


def run_migrations_offline() -> None:
    """Emit the migration SQL to stdout without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        logger.info("Generating notification schema SQL (offline)")
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply the migrations over a dedicated, unpooled connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
            compare_type=True,
        )

        with context.begin_transaction():
            logger.info("Migrating notification schema")
            context.run_migrations()
            logger.success("Notification schema is up to date")


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
