import os
from contextlib import contextmanager
from typing import Iterator

import psycopg

# Supabase hands out the short scheme, which SQLAlchemy no longer accepts
_SHORT_SCHEME = "postgres://"
CONNECT_TIMEOUT_SECONDS = 10


def get_database_url() -> str:
    """DATABASE_URL, with the `postgres://` scheme spelled out in full."""
    url = os.environ["DATABASE_URL"].strip()
    if url.startswith(_SHORT_SCHEME):
        url = "postgresql://" + url[len(_SHORT_SCHEME) :]
    return url


def get_sqlalchemy_database_url() -> str:
    """The same database as a SQLAlchemy URL for Alembic, pinned to psycopg 3."""
    _, _, rest = get_database_url().partition("://")
    return f"postgresql+psycopg://{rest}"


@contextmanager
def get_db_connection() -> Iterator[psycopg.Connection]:
    """Open a connection for one unit of work and close it afterwards.

    Nothing is pooled between requests. Callers that need several statements
    to land together wrap them in `conn.transaction()`.
    """
    conn = psycopg.connect(get_database_url(), connect_timeout=CONNECT_TIMEOUT_SECONDS)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def get_db_cursor() -> Iterator[psycopg.Cursor]:
    """A cursor whose statements commit together, or roll back on error."""
    with get_db_connection() as conn:
        with conn.cursor() as cursor:
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
