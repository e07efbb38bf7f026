# tests/conftest.py
import logging

import pytest

from connectors.connection import ConnectionFailure


class FakeConnection:
    """
    In-memory stand-in for ``PGSQLConnection``.

    ``responses`` maps a SQL fragment to the rows to return, or to an
    exception instance to raise. The first fragment found in the SQL wins;
    SQL that matches nothing returns no rows.
    """

    def __init__(self, database, responses=None, extensions=(), log=None):
        self.database = database
        self.responses = responses or {}
        self.extensions = set(extensions)
        self.log = log if log is not None else []
        self.closed = False

    def query(self, sql, params=None):
        self.log.append((self.database, sql, params))
        for fragment, result in self.responses.items():
            if fragment in sql:
                if isinstance(result, Exception):
                    raise result
                return [dict(row) for row in result]
        return []

    def have_extension_in_schema(self, extension, schema):
        return (extension, schema) in self.extensions

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class FakeConnectionInfo:
    """
    Stand-in for ``ConnectionInfo``: hands out ``FakeConnection`` objects and
    records every connection it opened.
    """

    def __init__(self, host="db.example", port="5432", database="postgres", responses=None,
                 extensions=(), failing=()):
        self.host = host
        self.port = port
        self.database = database
        # database name -> {sql fragment: rows}; "*" applies to every database
        self.responses = responses or {}
        self.extensions = extensions
        self.failing = set(failing)
        self.opened = []
        self.queries = []

    def host_port(self):
        return self.host, self.port

    def database_name(self):
        return self.database

    def new_connection(self, database):
        if database in self.failing:
            raise ConnectionFailure(f"error creating connection to {self.host}:{self.port}/{database}")
        responses = dict(self.responses.get(database, {}))
        for fragment, rows in self.responses.get("*", {}).items():
            responses.setdefault(fragment, rows)
        con = FakeConnection(database, responses, self.extensions, self.queries)
        self.opened.append(con)
        return con

    def sql_for(self, database):
        return [sql for db, sql, _ in self.queries if db == database]


def version_row(version):
    return {"SHOW server_version": [{"server_version": version}]}


@pytest.fixture
def fake_connection():
    def _make(responses=None, database="postgres", extensions=()):
        return FakeConnection(database, responses, extensions)
    return _make


@pytest.fixture
def make_connection_info():
    def _make(version="14.5", primary=None, per_database=None, **kwargs):
        responses = {"postgres": {**version_row(version), **(primary or {})}}
        for database, rows in (per_database or {}).items():
            responses.setdefault(database, {}).update(rows)
        return FakeConnectionInfo(responses=responses, **kwargs)
    return _make


@pytest.fixture(autouse=True)
def reset_pgcollector_logger():
    root = logging.getLogger("pgcollector")
    handlers = list(root.handlers)
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.propagate = True
    root.setLevel(logging.NOTSET)

