# metrics/entities.py
"""
Monitored entities, their metric sets, and identity resolution.

``EntityRegistry`` is the per-run identity table: an entity is keyed by
(name, type, ordered identity attributes) and looked up create-if-absent, so
records from different queries that resolve to the same identity land on the
same entity.
"""
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from metrics.domains import ENTITY_TYPES, SCOPE_ID_KEYS
from metrics.errors import ErrorEntry, FieldCopyError, error_entry
from metrics.records import SourceType

logger = logging.getLogger("pgcollector.metrics.entities")


@dataclass(frozen=True)
class IDAttribute:
    key: str
    value: str


class MetricSet:
    def __init__(self, event_type: str, attributes: Optional[Dict[str, str]] = None):
        self.event_type = event_type
        self.attributes = dict(attributes or {})
        self.metrics: Dict[str, object] = {}
        self.source_types: Dict[str, SourceType] = {}

    def set_metric(self, name: str, value, source_type: SourceType) -> None:
        """Store ``value`` under ``name``; raises FieldCopyError on a type mismatch."""
        if source_type == SourceType.ATTRIBUTE:
            if isinstance(value, (dict, list, tuple, set)):
                raise FieldCopyError(f"{name}: attribute value must be a scalar, got {type(value).__name__}")
            value = str(value)
        else:
            if isinstance(value, Decimal):
                value = float(value)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise FieldCopyError(f"{name}: {source_type.value} metric requires a number, got {value!r}")
            if not math.isfinite(value):
                raise FieldCopyError(f"{name}: {source_type.value} metric is not finite: {value!r}")

        self.metrics[name] = value
        self.source_types[name] = source_type

    def to_dict(self) -> dict:
        return {"event_type": self.event_type, **self.attributes, **self.metrics}


class Entity:
    def __init__(self, name: str, entity_type: str, id_attributes: Tuple[IDAttribute, ...] = ()):
        self.name = name
        self.type = entity_type
        self.id_attributes = tuple(id_attributes)
        self.metric_sets: List[MetricSet] = []

    @property
    def key(self):
        return (self.name, self.type, self.id_attributes)

    def new_metric_set(self, event_type: str, attributes=None) -> MetricSet:
        metric_set = MetricSet(event_type, attributes)
        self.metric_sets.append(metric_set)
        return metric_set

    def metric_set(self, event_type: str, attributes=None) -> MetricSet:
        """Return the first metric set of ``event_type``, creating it if absent."""
        for metric_set in self.metric_sets:
            if metric_set.event_type == event_type:
                return metric_set
        return self.new_metric_set(event_type, attributes)

    def to_dict(self) -> dict:
        return {
            "entity": {
                "name": self.name,
                "type": self.type,
                "id_attributes": [{"Key": a.key, "Value": a.value} for a in self.id_attributes],
            },
            "metrics": [m.to_dict() for m in self.metric_sets],
            "inventory": {},
            "events": [],
        }

    def __repr__(self):
        return f"Entity(name={self.name!r}, type={self.type!r}, id_attributes={self.id_attributes!r})"


class EntityRegistry:
    def __init__(self):
        self._entities: Dict[tuple, Entity] = {}

    def entity(self, name: str, entity_type: str, *id_attributes: IDAttribute) -> Entity:
        if name is None:
            raise ValueError(f"entity name is required for {entity_type}")
        if entity_type not in ENTITY_TYPES:
            raise ValueError(f"unknown entity type {entity_type!r}")

        key = (name, entity_type, tuple(id_attributes))
        existing = self._entities.get(key)
        if existing is not None:
            return existing

        created = Entity(name, entity_type, tuple(id_attributes))
        self._entities[key] = created
        return created

    def entities(self, entity_type: Optional[str] = None) -> List[Entity]:
        return [e for e in self._entities.values() if entity_type is None or e.type == entity_type]

    def __iter__(self):
        return iter(self._entities.values())

    def __len__(self):
        return len(self._entities)


_SCOPE_ACCESSORS = {
    "database": lambda record: record.database_name(),
    "schema": lambda record: record.schema_name(),
    "table": lambda record: record.table_name(),
    "index": lambda record: record.index_name(),
}


@dataclass
class Resolution:
    entity: Optional[Entity]
    identity: Dict[str, str] = field(default_factory=dict)
    errors: List[ErrorEntry] = field(default_factory=list)


class EntityResolver:
    """Maps a decoded record to its entity for a domain."""

    def __init__(self, registry: EntityRegistry, host: str, port: str):
        self.registry = registry
        self.host = host
        self.port = port

    def resolve(self, record, domain) -> Resolution:
        resolution = Resolution(entity=None)

        for scope in domain.scopes:
            value = _SCOPE_ACCESSORS[scope](record)
            if value is None:
                resolution.errors.append(error_entry(
                    "identity_error", domain.name, "entity",
                    f"Unable to get {scope} name from {type(record).__name__}",
                ))
                value = ""
            resolution.identity[scope] = value

        name = resolution.identity[domain.scopes[-1]] if domain.scopes else ""
        if domain.requires_name and not name:
            if not resolution.errors:
                resolution.errors.append(error_entry(
                    "identity_error", domain.name, "entity",
                    f"Empty {domain.scopes[-1]} name in {type(record).__name__}",
                ))
            return resolution

        id_attributes = [IDAttribute("host", self.host), IDAttribute("port", self.port)]
        id_attributes += [IDAttribute(SCOPE_ID_KEYS[s], resolution.identity[s]) for s in domain.containing_scopes]

        try:
            resolution.entity = self.registry.entity(name, domain.entity_type, *id_attributes)
        except ValueError as e:
            resolution.errors.append(error_entry(
                "entity_error", domain.name, "entity",
                f"Failed to get {domain.entity_type} entity for name {name!r}: {e}",
                entity=name,
            ))
        return resolution
