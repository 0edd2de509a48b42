"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without an alembic context.
Accepts the same DATABASE_URL forms as marketnotify.infra.db: a URL or a
libpq key=value DSN, with DB_PASSWORD filling in a missing password.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL, make_url

DRIVER = "postgresql+psycopg2"


def _url_from_dsn(dsn: str, db_password: str) -> URL:
    params = parse_dsn(dsn)
    host = params.get("host")
    query = {}
    # Unix socket directories go in the query string, not the netloc
    if host and host.startswith("/"):
        query["host"] = host
        host = None

    return URL.create(
        DRIVER,
        username=params.get("user"),
        password=params.get("password") or db_password or None,
        host=host,
        port=int(params["port"]) if params.get("port") else None,
        database=params.get("dbname"),
        query=query,
    )


def get_database_url() -> str:
    """SQLAlchemy URL for DATABASE_URL.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    raw = os.environ.get("DATABASE_URL")
    if not raw:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    db_password = os.environ.get("DB_PASSWORD", "")

    if "://" not in raw:
        url = _url_from_dsn(raw, db_password)
    else:
        url = make_url(raw.replace("postgres://", "postgresql://", 1))
        url = url.set(drivername=DRIVER)
        if not url.password and db_password:
            url = url.set(password=db_password)

    return url.render_as_string(hide_password=False)
