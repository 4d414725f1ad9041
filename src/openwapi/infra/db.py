"""Database access layer using psycopg2.

Provides:
- get_conn(): Get a database connection from a DSN
- txn(): Context manager for short, safe transactions
"""

import os
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor


def get_conn(dsn: str | None = None) -> PgConnection:
    """Open a new database connection.

    Args:
        dsn: psycopg2 DSN. Falls back to DATABASE_URL when None.

    Returns:
        psycopg2 connection object.

    Raises:
        RuntimeError: If no DSN is given and DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = dsn or os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")
    return psycopg2.connect(dsn)


@contextmanager
def txn(dsn: str | None = None) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    Opens a connection that is closed on exit. Commits on successful exit,
    rolls back on exception.

    Example:
        with txn() as cur:
            cur.execute("UPDATE messages SET reply_status = %s WHERE id = %s", ("replied", 1))
    """
    conn = get_conn(dsn)
    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
