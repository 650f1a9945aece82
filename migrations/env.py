"""Alembic environment for the chat schema.

Revisions are plain SQL through ``op.execute``, so there is no MetaData to
diff against and autogenerate is unsupported. The target database comes from
DATABASE_URL (libpq DSN or URL, DB_PASSWORD as fallback) via env_helpers.
"""

from __future__ import annotations

import sys
from logging.config import fileConfig
from pathlib import Path
from typing import Any

from alembic import context
from sqlalchemy import create_engine, pool

sys.path.insert(0, str(Path(__file__).resolve().parent))

from env_helpers import get_database_url  # noqa: E402


def _run(**options: Any) -> None:
    context.configure(target_metadata=None, **options)
    with context.begin_transaction():
        context.run_migrations()


def main() -> None:
    config = context.config
    if config.config_file_name is not None:
        fileConfig(config.config_file_name, disable_existing_loggers=False)

    url = get_database_url()
    if context.is_offline_mode():
        # --sql: render the DDL instead of executing it
        _run(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
        return

    engine = create_engine(url, poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            _run(connection=connection)
    finally:
        engine.dispose()


main()
