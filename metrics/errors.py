# metrics/errors.py
"""
Error taxonomy for metric collection.

Exceptions are raised where a failure cannot be contained (version resolution)
or where a component hands a failure back to its caller (query execution,
row decoding, field copy). Everything below fatal is turned into an
``ErrorEntry`` and aggregated by the orchestrator.
"""
from typing import TypedDict, Optional


class CollectorError(Exception):
    """Base class for collection failures."""


class VersionError(CollectorError):
    """The server version could not be read or parsed."""


class QueryError(CollectorError):
    """A query failed to execute."""


class DecodeError(CollectorError):
    """A result row could not be decoded into its record shape."""


class FieldCopyError(CollectorError):
    """A record field is incompatible with its declared metric type."""


class ErrorEntry(TypedDict, total=False):
    """
    Structured error entry.

    Required: type, domain, stage, message, severity.
    """
    type: str  # e.g. "query_error", "identity_error", "no_data"
    domain: str  # "instance", "database", "lock", "table", "index", "pgbouncer"
    stage: str  # e.g. "connection", "query", "decode", "entity", "sample"
    message: str
    severity: str  # "debug", "warning" or "error"
    query: Optional[str]
    entity: Optional[str]
    detail: Optional[str]


def error_entry(type, domain, stage, message, severity="error", query=None, entity=None, detail=None) -> ErrorEntry:
    entry: ErrorEntry = {
        "type": type,
        "domain": domain,
        "stage": stage,
        "message": message,
        "severity": severity,
    }
    if query is not None:
        entry["query"] = query
    if entity is not None:
        entry["entity"] = entity
    if detail is not None:
        entry["detail"] = detail
    return entry
