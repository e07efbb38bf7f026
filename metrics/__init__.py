"""
Version-aware PostgreSQL metric collection core.

This package provides:
- Version resolution (collect_version, parse_version)
- The query definition catalog (QueryCatalog, QueryDefinition)
- Query execution and row decoding (QueryExecutor)
- Entity identity resolution (EntityRegistry, EntityResolver)
- Sample population (MetricAttacher)
"""

from metrics.attacher import MetricAttacher
from metrics.definitions import QueryCatalog, QueryDefinition
from metrics.entities import EntityRegistry, EntityResolver
from metrics.executor import QueryExecutor
from metrics.version import Version, collect_version, parse_version

__all__ = [
    "EntityRegistry",
    "EntityResolver",
    "MetricAttacher",
    "QueryCatalog",
    "QueryDefinition",
    "QueryExecutor",
    "Version",
    "collect_version",
    "parse_version",
]
