"""
Payload schema definitions for pgcollector.

Defines TypedDict schemas for the published document, its entities and metadata.
"""
from typing import TypedDict, List, Optional

from metrics.errors import ErrorEntry

INTEGRATION_NAME = "com.pgcollector.postgresql"

# Payload layout version
PROTOCOL_VERSION = "3"


class IDAttributeEntry(TypedDict):
    Key: str
    Value: str


class EntityHeader(TypedDict):
    name: str
    type: str  # "pg-instance", "pg-database", "pg-table", "pg-index", "pgbouncer"
    id_attributes: List[IDAttributeEntry]


class EntityEntry(TypedDict):
    entity: EntityHeader
    metrics: List[dict]  # {"event_type": ..., **attributes, **metrics}
    inventory: dict
    events: list


class Metadata(TypedDict):
    """Collection run metadata."""
    session_id: str  # Format: pg_2025-11-23T11:33:09Z_550e8400
    collector_version: str
    collector_build: str
    collected_at: str  # ISO 8601 UTC with microseconds
    saved_at: str  # ISO 8601 UTC with microseconds
    host: str
    port: str
    server_version: Optional[str]


class PayloadDocument(TypedDict):
    name: str
    protocol_version: str
    integration_version: str
    metadata: Metadata
    data: List[EntityEntry]
    errors: List[ErrorEntry]
