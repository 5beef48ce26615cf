import os

import pytest
import psycopg2
from psycopg2 import sql


def render(query):
    """Render a psycopg2.sql object to text without a live connection."""
    if isinstance(query, str):
        return query
    if isinstance(query, sql.Composed):
        return "".join(render(part) for part in query.seq)
    if isinstance(query, sql.SQL):
        return query.string
    if isinstance(query, sql.Identifier):
        return ".".join('"%s"' % s.replace('"', '""') for s in query.strings)
    raise TypeError(f"cannot render {query!r}")


def _like_prefix(pattern):
    # Only handles the escaped "prefix%" patterns the backup code builds
    assert pattern.endswith("%")
    out, chars = [], iter(pattern[:-1])
    for ch in chars:
        out.append(next(chars) if ch == "\\" else ch)
    return "".join(out)


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self._rows = []

    def execute(self, query, params=None):
        self.conn.executed.append((render(query), params))
        self.conn.handle(query, params, self)

    def fetchall(self):
        return self._rows

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *a):
        return False


class FakeConn:
    """Tiny stand-in for a psycopg2 connection holding a set of table names.

    Understands the catalog queries plus DROP TABLE / CREATE TABLE AS. Table
    names listed in `fail_on` make DDL touching them raise
    psycopg2.ProgrammingError; `catalog_error` makes every catalog query fail.
    """

    def __init__(self, tables=(), fail_on=(), catalog_error=None):
        self.tables = set(tables)
        self.fail_on = set(fail_on)
        self.catalog_error = catalog_error
        self.executed = []
        self.closed = False
        self.autocommit = False

    def cursor(self, cursor_factory=None):
        return FakeCursor(self)

    def close(self):
        self.closed = True

    @property
    def ddl(self):
        return [q for q, _ in self.executed if not q.startswith("SELECT")]

    def handle(self, query, params, cursor):
        text = render(query)
        if "information_schema.tables" in text:
            if self.catalog_error:
                raise self.catalog_error
            schema, pattern = params
            assert schema == "public"
            prefix = _like_prefix(pattern)
            negate = "NOT LIKE" in text
            cursor._rows = [
                (t,) for t in sorted(self.tables) if t.startswith(prefix) != negate
            ]
            return
        names = [
            part.strings[-1]
            for part in query.seq
            if isinstance(part, sql.Identifier)
        ]
        for name in names:
            if name in self.fail_on:
                raise psycopg2.ProgrammingError(f"permission denied for {name}")
        if text.startswith("DROP TABLE IF EXISTS"):
            self.tables.discard(names[0])
        elif text.startswith("CREATE TABLE"):
            backup, source = names
            if backup in self.tables:
                raise psycopg2.ProgrammingError(
                    f'relation "{backup}" already exists'
                )
            self.tables.add(backup)
        else:
            raise AssertionError(f"unexpected statement {text}")


@pytest.fixture
def fake_conn_factory():
    return FakeConn


@pytest.fixture
def db_connection():
    """Provide a DB connection for integration tests. Tests that depend on
    an actual database are skipped by default and require the environment
    variable `RUN_DB_INTEGRATION=1` to be set.
    """
    if os.getenv("RUN_DB_INTEGRATION") != "1":
        pytest.skip(
            "DB integration tests disabled (set RUN_DB_INTEGRATION=1 to enable)"
        )

    import database
    from config import parse_database_url

    conn = database.connect(parse_database_url())
    try:
        yield conn
    finally:
        conn.close()
