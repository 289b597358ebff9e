"""Database URL helpers for Alembic migrations.

Kept out of env.py so they can be tested without an alembic context.

DATABASE_URL is shared with the application, which hands it to psycopg2
as-is. Alembic needs a SQLAlchemy URL, so both accepted forms (URL and
libpq key=value DSN) are converted here; DB_PASSWORD fills a missing
password the same way tourdesk.infra.db does.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL, make_url

DRIVERNAME = "postgresql+psycopg2"


def _from_libpq_dsn(dsn: str) -> URL:
    params = parse_dsn(dsn)
    host = params.pop("host", None)
    port = params.pop("port", None)
    query = {}
    if host and host.startswith("/"):
        # Unix socket directory
        query["host"] = host
        host = None

    return URL.create(
        DRIVERNAME,
        username=params.get("user"),
        password=params.get("password"),
        host=host,
        port=int(port) if port else None,
        database=params.get("dbname"),
        query=query,
    )


def get_database_url() -> URL:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")

    if "://" in url:
        parsed = make_url(url)
        if parsed.drivername in ("postgres", "postgresql"):
            parsed = parsed.set(drivername=DRIVERNAME)
    else:
        parsed = _from_libpq_dsn(url)

    db_password = os.environ.get("DB_PASSWORD", "")
    if db_password and not parsed.password:
        parsed = parsed.set(password=db_password)
    return parsed
