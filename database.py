"""
Database access for the backup job
Opens a single explicit connection per run and guarantees it is closed
"""

import psycopg2
from contextlib import contextmanager
from typing import Any, List, Optional
import logging

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10


def connect(params: dict):
    """Open a connection from a host/port/user/password/database dict.

    The connection is put in autocommit mode: every statement commits on its
    own, so one failed DROP or CREATE does not abort the statements after it.
    """
    logger.info(
        "Connecting to %s@%s:%s/%s",
        params.get("user"),
        params.get("host"),
        params.get("port"),
        params.get("database"),
    )
    conn = psycopg2.connect(
        host=params.get("host"),
        port=params.get("port"),
        user=params.get("user"),
        password=params.get("password"),
        database=params.get("database"),
        connect_timeout=CONNECT_TIMEOUT,
    )
    conn.autocommit = True
    return conn


@contextmanager
def get_db_connection(params: dict, connect_fn=None):
    """
    Context manager for the backup connection

    Usage:
        with get_db_connection(settings.postgres) as conn:
            perform_backup(conn, ...)
    """
    conn = (connect_fn or connect)(params)
    try:
        yield conn
    finally:
        conn.close()


def fetch_column(conn, query, params: Optional[tuple] = None) -> List[Any]:
    """Execute a query and return the first column of every row"""
    with conn.cursor() as cursor:
        cursor.execute(query, params)
        return [row[0] for row in cursor.fetchall()]


def execute(conn, query, params: Optional[tuple] = None) -> None:
    """Execute a statement without fetching results"""
    with conn.cursor() as cursor:
        cursor.execute(query, params)
