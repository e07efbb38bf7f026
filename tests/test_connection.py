# tests/test_connection.py
import psycopg2
import pytest

from config.config_loader import ArgumentList
from connectors import connection
from connectors.connection import ConnectionFailure, ConnectionInfo, PGSQLConnection
from metrics.errors import QueryError


class FakeCursor:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.description = [("col",)] if rows is not None else None
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append((sql, params))
        if self.error:
            raise self.error

    def fetchall(self):
        return self.rows

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakePsycopgConnection:
    def __init__(self, cursor):
        self._cursor = cursor
        self.closed = 0
        self.autocommit = False

    def cursor(self, cursor_factory=None):
        return self._cursor

    def close(self):
        self.closed = 1


class TestConnectParams:
    def test_plain(self):
        info = ConnectionInfo(ArgumentList(hostname="db", port="5433", username="u", password="p", timeout="5"))
        params = info.connect_params("app")
        assert params["host"] == "db"
        assert params["port"] == 5433
        assert params["dbname"] == "app"
        assert params["connect_timeout"] == 5
        assert params["sslmode"] == "disable"
        assert info.host_port() == ("db", "5433")

    def test_ssl_modes(self):
        trusted = ConnectionInfo(ArgumentList(enable_ssl=True, trust_server_certificate=True))
        assert trusted.connect_params("app")["sslmode"] == "require"

        verified = ConnectionInfo(ArgumentList(enable_ssl=True, ssl_root_cert_location="/ca.pem",
                                               ssl_cert_location="/c.crt", ssl_key_location="/c.key"))
        params = verified.connect_params("app")
        assert params["sslmode"] == "verify-full"
        assert params["sslrootcert"] == "/ca.pem"
        assert (params["sslcert"], params["sslkey"]) == ("/c.crt", "/c.key")


class TestNewConnection:
    def test_driver_error_becomes_connection_failure(self, monkeypatch):
        def refuse(**kwargs):
            raise psycopg2.OperationalError("connection refused")

        monkeypatch.setattr(connection.psycopg2, "connect", refuse)
        with pytest.raises(ConnectionFailure, match="connection refused"):
            ConnectionInfo(ArgumentList()).new_connection("app")

    def test_autocommit_and_wrapper(self, monkeypatch):
        raw = FakePsycopgConnection(FakeCursor([]))
        monkeypatch.setattr(connection.psycopg2, "connect", lambda **kwargs: raw)

        con = ConnectionInfo(ArgumentList()).new_connection("app")

        assert isinstance(con, PGSQLConnection)
        assert con.database == "app"
        assert raw.autocommit is True


class TestPGSQLConnection:
    def test_query_returns_dicts(self):
        cursor = FakeCursor([{"server_version": "14.5"}])
        con = PGSQLConnection(FakePsycopgConnection(cursor), "postgres")
        assert con.query("SHOW server_version") == [{"server_version": "14.5"}]
        assert cursor.executed == [("SHOW server_version", None)]

    def test_driver_error_becomes_query_error(self):
        cursor = FakeCursor([], error=psycopg2.ProgrammingError("syntax error"))
        con = PGSQLConnection(FakePsycopgConnection(cursor), "postgres")
        with pytest.raises(QueryError, match="syntax error"):
            con.query("SELEC 1")

    def test_have_extension(self):
        present = PGSQLConnection(FakePsycopgConnection(FakeCursor([{"count": 1}])), "postgres")
        absent = PGSQLConnection(FakePsycopgConnection(FakeCursor([{"count": 0}])), "postgres")
        failing = PGSQLConnection(FakePsycopgConnection(FakeCursor([], error=psycopg2.Error("denied"))), "postgres")
        assert present.have_extension_in_schema("tablefunc", "public")
        assert not absent.have_extension_in_schema("tablefunc", "public")
        assert not failing.have_extension_in_schema("tablefunc", "public")

    def test_context_manager_closes(self):
        raw = FakePsycopgConnection(FakeCursor([]))
        with PGSQLConnection(raw, "app"):
            pass
        assert raw.closed
