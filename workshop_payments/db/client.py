"""PostgreSQL connection pool backing the document store.

The pool is created on first use from ``DB_*`` settings. When those are not
set ``get_conn`` yields ``None`` and the store reports a configuration error.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import connection as PgConnection
from psycopg2.pool import ThreadedConnectionPool

from workshop_payments.config import settings

logger = logging.getLogger(__name__)

_pool: ThreadedConnectionPool | None = None

MIN_CONNECTIONS = 1
MAX_CONNECTIONS = 10
CHECKOUT_ATTEMPTS = 2


def init_pool() -> ThreadedConnectionPool | None:
    global _pool
    if _pool is None and settings.db_enabled:
        _pool = ThreadedConnectionPool(MIN_CONNECTIONS, MAX_CONNECTIONS, dsn=settings.db_dsn)
        logger.info(
            "database pool initialised",
            extra={"event": "db_pool_open"},
        )
    return _pool


def close_pool() -> None:
    global _pool
    if _pool is None:
        return
    _pool.closeall()
    _pool = None
    logger.info("database pool closed", extra={"event": "db_pool_close"})


def _checkout(pool: ThreadedConnectionPool) -> PgConnection:
    """Take a connection and pin its search path; a dead connection is discarded and replaced once."""
    statement = sql.SQL("SET search_path TO {}").format(sql.Identifier(settings.db_schema or "public"))
    attempts_left = CHECKOUT_ATTEMPTS
    while True:
        conn = pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute(statement)
            return conn
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
            logger.info(
                "discarding broken connection",
                extra={"event": "db_checkout", "error": str(exc)},
            )
            pool.putconn(conn, close=True)
            attempts_left -= 1
            if not attempts_left:
                raise


@contextmanager
def get_conn() -> Iterator[PgConnection | None]:
    """Yield a connection inside a transaction: commit on success, roll back on error."""
    pool = init_pool()
    if pool is None:
        yield None
        return
    conn = _checkout(pool)
    try:
        yield conn
        conn.commit()
    except Exception:
        try:
            conn.rollback()
        except psycopg2.Error as exc:
            logger.info("rollback failed", extra={"event": "db_rollback", "error": str(exc)})
        raise
    finally:
        pool.putconn(conn)
