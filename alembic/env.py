"""
Alembic environment configuration for the Epic Notes backend.

What this file does:
  1. Pulls the real database URL from our Settings class (reads .env)
     so credentials are never hardcoded here.
  2. Imports ALL SQLAlchemy models so Alembic knows every table.
     If you add a new model file, import it in epic_notes/models/__init__.py
     and it will automatically be picked up here.
  3. Sets compare_type=True so Alembic detects column type changes.

Running migrations:
  Generate:  alembic revision --autogenerate -m "describe_change"
  Apply:     alembic upgrade head
  Rollback:  alembic downgrade -1
"""

import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

# ── Path setup ────────────────────────────────────────────────────────────────
# Ensure the project root (where the `epic_notes` package lives) is on sys.path
# when Alembic runs from a checkout without an editable install.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from epic_notes.config import settings

# ── Import Base and ALL models ────────────────────────────────────────────────
# Importing epic_notes.models registers every table with Base.metadata.
# Without this, autogenerate sees nothing.
from epic_notes.database import Base
import epic_notes.models  # noqa: F401  registers all ORM models

# ── Alembic config object ─────────────────────────────────────────────────────
config = context.config

# Credentials live only in .env and are never committed.
config.set_main_option("sqlalchemy.url", settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


# ── Offline mode ──────────────────────────────────────────────────────────────
def run_migrations_offline() -> None:
    """Generate SQL without connecting. Usage: alembic upgrade head --sql"""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


# ── Online mode ───────────────────────────────────────────────────────────────
def run_migrations_online() -> None:
    """
    Connect to the DB and apply migrations. Usage: alembic upgrade head

    NullPool: migration scripts open and close their own connection instead of
    borrowing from the app's pool.
    """
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            # SQLite needs batch mode for ALTER TABLE in later revisions
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


# ── Entry point ───────────────────────────────────────────────────────────────
if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
