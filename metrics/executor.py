# metrics/executor.py
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from metrics.errors import DecodeError, ErrorEntry, QueryError, error_entry

logger = logging.getLogger("pgcollector.metrics.executor")


@dataclass
class QueryResult:
    definition: object
    records: List = field(default_factory=list)
    error: Optional[ErrorEntry] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class QueryExecutor:
    """
    Runs a query definition and decodes its rows into the definition's record type.

    Outcomes are reported on the result rather than raised:
      - execution failure -> ``query_error`` entry, no records
      - zero rows         -> ``no_data`` entry at debug severity, no records
      - decode failure    -> ``decode_error`` entry, no records
    """

    def execute(self, connection, definition, domain: str) -> QueryResult:
        query = definition.describe()
        try:
            rows = connection.query(definition.query, definition.params)
        except QueryError as e:
            return QueryResult(definition, error=error_entry(
                "query_error", domain, "query",
                f"Could not execute {domain} query: {e}",
                query=query,
            ))

        if not rows:
            return QueryResult(definition, error=error_entry(
                "no_data", domain, "query",
                f"No data returned from {domain} query",
                severity="debug",
                query=query,
            ))

        try:
            decoded = [definition.record_type.from_row(row) for row in rows]
        except DecodeError as e:
            return QueryResult(definition, error=error_entry(
                "decode_error", domain, "decode",
                f"Could not decode {domain} query result into {definition.record_type.__name__}: {e}",
                query=query,
            ))

        logger.debug("%s query returned %d row(s): %s", domain, len(decoded), query)
        return QueryResult(definition, records=decoded)
