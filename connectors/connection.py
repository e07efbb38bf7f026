# connectors/connection.py

import logging

import psycopg2
import psycopg2.extras

from metrics.errors import QueryError

logger = logging.getLogger("pgcollector.connectors.connection")

APPLICATION_NAME = "pgcollector"

EXTENSION_QUERY = """
    SELECT COUNT(*) AS count
    FROM pg_extension E
    INNER JOIN pg_namespace N ON N.oid = E.extnamespace
    WHERE E.extname = %(extension)s AND N.nspname = %(schema)s;
"""


class ConnectionFailure(Exception):
    """A connection to the server could not be opened."""


class ConnectionInfo:
    """
    Connection settings taken from the argument list; opens one
    ``PGSQLConnection`` per target database.
    """

    def __init__(self, args):
        self.args = args

    def host_port(self):
        return self.args.hostname, str(self.args.port)

    def database_name(self):
        return self.args.database

    def connect_params(self, database) -> dict:
        args = self.args
        params = {
            "host": args.hostname,
            "port": int(args.port),
            "user": args.username,
            "password": args.password,
            "dbname": database,
            "connect_timeout": int(args.timeout),
            "application_name": APPLICATION_NAME,
        }

        if not args.enable_ssl:
            params["sslmode"] = "disable"
        elif args.trust_server_certificate:
            params["sslmode"] = "require"
        else:
            params["sslmode"] = "verify-full"
            params["sslrootcert"] = args.ssl_root_cert_location

        if args.enable_ssl and args.ssl_cert_location:
            params["sslcert"] = args.ssl_cert_location
            params["sslkey"] = args.ssl_key_location

        return params

    def new_connection(self, database) -> "PGSQLConnection":
        host, port = self.host_port()
        try:
            conn = psycopg2.connect(**self.connect_params(database))
        except psycopg2.Error as e:
            raise ConnectionFailure(
                f"error creating connection to {host}:{port}/{database}: {str(e).strip()}"
            ) from e

        # read-only collection; the pgbouncer admin console rejects transactions
        conn.autocommit = True
        logger.debug("Connected to %s:%s/%s", host, port, database)
        return PGSQLConnection(conn, database)


class PGSQLConnection:
    def __init__(self, conn, database):
        self._conn = conn
        self.database = database

    def query(self, sql, params=None):
        """Execute ``sql`` and return its rows as a list of dicts."""
        try:
            with self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(sql, params)
                if cursor.description is None:
                    return []
                return [dict(row) for row in cursor.fetchall()]
        except psycopg2.Error as e:
            raise QueryError(str(e).strip()) from e

    def have_extension_in_schema(self, extension, schema) -> bool:
        try:
            rows = self.query(EXTENSION_QUERY, {"extension": extension, "schema": schema})
        except QueryError as e:
            logger.warning("Could not check for extension %s in schema %s: %s", extension, schema, e)
            return False
        return bool(rows) and rows[0].get("count", 0) > 0

    def close(self):
        if not self._conn.closed:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
