"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without an alembic context.
The runtime store reads the same DATABASE_URL / DB_PASSWORD pair through
psycopg2 directly; Alembic needs it as a SQLAlchemy URL.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL, make_url

DRIVER = "postgresql+psycopg2"


def sqlalchemy_url(dsn: str, password: str = "") -> str:
    """Convert a libpq DSN or postgres URL to a SQLAlchemy URL string.

    Args:
        dsn: ``postgres://``/``postgresql://`` URL or libpq ``key=value`` DSN.
        password: Applied only when the DSN carries no password.

    Unix-socket hosts (``host=/cloudsql/...``) move to the query string.
    """
    if "://" in dsn:
        url = make_url(dsn)
        url = url.set(drivername=DRIVER)
        if password and not url.password:
            url = url.set(password=password)
        return url.render_as_string(hide_password=False)

    params = parse_dsn(dsn)
    host = params.get("host", "localhost")
    socket = host.startswith("/")
    url = URL.create(
        DRIVER,
        username=params.get("user"),
        password=params.get("password") or password or None,
        host=None if socket else host,
        port=None if socket else int(params.get("port", "5432")),
        database=params.get("dbname"),
        query={"host": host} if socket else {},
    )
    return url.render_as_string(hide_password=False)


def get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    return sqlalchemy_url(url, os.environ.get("DB_PASSWORD", ""))
