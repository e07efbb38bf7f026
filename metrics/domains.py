# metrics/domains.py
"""
Metric domains and the entity each one produces.

``scopes`` lists the identity fields a domain reads from its records, outer to
inner. The innermost scope names the entity; the outer ones become identity
attributes and sample context attributes.
"""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Domain:
    name: str
    entity_type: str
    event_type: str
    entity_prefix: str
    scopes: Tuple[str, ...] = ()
    # records without an innermost name are dropped instead of mapped to an unnamed entity
    requires_name: bool = False

    @property
    def containing_scopes(self) -> Tuple[str, ...]:
        return self.scopes[:-1]


INSTANCE = Domain("instance", "pg-instance", "PostgresqlInstanceSample", "pg-instance")
DATABASE = Domain("database", "pg-database", "PostgresqlDatabaseSample", "database", ("database",))
LOCK = Domain("lock", "pg-database", "PostgresqlDatabaseSample", "database", ("database",))
TABLE = Domain("table", "pg-table", "PostgresqlTableSample", "table", ("database", "schema", "table"))
INDEX = Domain("index", "pg-index", "PostgresqlIndexSample", "index", ("database", "schema", "table", "index"))
PGBOUNCER = Domain("pgbouncer", "pgbouncer", "PgBouncerSample", "pgbouncer", ("database",), requires_name=True)

ENTITY_TYPES = frozenset(d.entity_type for d in (INSTANCE, DATABASE, LOCK, TABLE, INDEX, PGBOUNCER))

# identity attribute key used when a scope contains another entity
SCOPE_ID_KEYS = {
    "database": "pg-database",
    "schema": "pg-schema",
    "table": "pg-table",
}
