# metrics/attacher.py
from metrics.errors import FieldCopyError, error_entry


class MetricAttacher:
    """
    Seeds a sample on an entity with display/context attributes and copies a
    record's metric fields onto it.
    """

    def sample_attributes(self, entity, domain, identity=None, extra=None) -> dict:
        attributes = {
            "displayName": entity.name,
            "entityName": f"{domain.entity_prefix}:{entity.name}",
        }
        for scope in domain.containing_scopes:
            attributes[scope] = (identity or {}).get(scope, "")
        attributes.update(extra or {})
        return attributes

    def attach(self, entity, domain, record, identity=None, extra=None, reuse=False):
        """
        Returns ``(metric_set, errors)``. With ``reuse`` the entity's existing
        sample of the domain's event type is filled instead of a new one.
        Fields that are None are skipped; a field that fails to copy is
        reported and the remaining fields are still copied.
        """
        attributes = self.sample_attributes(entity, domain, identity, extra)
        if reuse:
            metric_set = entity.metric_set(domain.event_type, attributes)
        else:
            metric_set = entity.new_metric_set(domain.event_type, attributes)

        errors = []
        for name, source_type, value in record.metric_values():
            if value is None:
                continue
            try:
                metric_set.set_metric(name, value, source_type)
            except FieldCopyError as e:
                errors.append(error_entry(
                    "field_error", domain.name, "sample",
                    f"Failed to populate {domain.entity_type} entity with metric: {e}",
                    entity=entity.name,
                ))
        return metric_set, errors
