# orchestrator/collection_orchestrator.py
import logging
import logging.handlers
import os
import sys
import traceback
from datetime import datetime, timezone
from itertools import groupby
from pathlib import Path

from connectors.connection import ConnectionFailure
from metrics import domains
from metrics.attacher import MetricAttacher
from metrics.definitions import QueryCatalog
from metrics.entities import EntityRegistry, EntityResolver
from metrics.errors import error_entry
from metrics.executor import QueryExecutor
from metrics.version import collect_version


# ================================================================
# Logging setup
# ================================================================
LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s %(message)s"
LOG_LEVEL_ENV_VAR = "PGCOLLECTOR_LOG_LEVEL"

PGBOUNCER_DATABASE = "pgbouncer"

logger = logging.getLogger("pgcollector.orchestrator")


def configure_root_logger(level=None, log_file=None):
    level = (level or os.environ.get(LOG_LEVEL_ENV_VAR) or "INFO").upper()
    root = logging.getLogger("pgcollector")

    if root.handlers:
        return root        # Already set up

    unknown_level = None
    if not isinstance(logging.getLevelName(level), int):
        unknown_level, level = level, "INFO"

    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    # File handler
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            filename=str(log_file),
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8"
        )
        fh.setFormatter(formatter)
        fh.setLevel(level)
        root.addHandler(fh)

    # Console handler; stdout carries the payload
    ch = logging.StreamHandler(stream=sys.stderr)
    ch.setFormatter(formatter)
    ch.setLevel(level)
    root.addHandler(ch)

    root.propagate = False
    if unknown_level:
        root.warning("Unknown log level %r; using INFO", unknown_level)
    return root


_SEVERITY_LEVELS = {
    "debug": logging.DEBUG,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class CollectionRun:
    """State of one collection pass: entities, errors and the resolved version."""

    def __init__(self, host, port):
        self.host = host
        self.port = port
        self.registry = EntityRegistry()
        self.errors = []
        self.version = None
        self.collected_at = datetime.now(timezone.utc)
        self.instance = self.registry.entity(f"{host}:{port}", domains.INSTANCE.entity_type)

    @property
    def entities(self):
        return list(self.registry)


class CollectionOrchestrator:
    """
    Sequences one collection pass over the metric domains.

    Opening the primary connection and resolving the server version are
    fatal: their exceptions propagate out of ``run()``. Every domain after
    that runs inside its own boundary, so a failure is recorded as an error
    entry and the next domain still runs.
    """

    def __init__(self, connection_info, databases, collect_pgbouncer=False, collect_db_locks=False,
                 catalog=None, executor=None, attacher=None):
        self.connection_info = connection_info
        self.databases = databases or {}
        self.collect_pgbouncer = collect_pgbouncer
        self.collect_db_locks = collect_db_locks
        self.catalog = catalog or QueryCatalog()
        self.executor = executor or QueryExecutor()
        self.attacher = attacher or MetricAttacher()

    # ----------------------------------------------------------------------
    def run(self) -> CollectionRun:
        host, port = self.connection_info.host_port()
        run = CollectionRun(host, port)
        resolver = EntityResolver(run.registry, host, port)

        with self.connection_info.new_connection(self.connection_info.database_name()) as con:
            run.version = collect_version(con)
            logger.info("Collecting metrics from %s:%s (server version %s)", host, port, run.version)

            self._run_domain(run, domains.INSTANCE, self.populate_instance_metrics, con)
            self._run_domain(run, domains.DATABASE, self.populate_database_metrics, con, resolver)
            if self.collect_db_locks:
                self._run_domain(run, domains.LOCK, self.populate_database_lock_metrics, con, resolver)
            self._run_domain(run, domains.TABLE, self.populate_table_metrics, resolver)
            self._run_domain(run, domains.INDEX, self.populate_index_metrics, resolver)

        if self.collect_pgbouncer:
            self._run_domain(run, domains.PGBOUNCER, self.populate_pgbouncer_metrics, resolver)

        logger.info("Collection finished: %d entities, %d error entries", len(run.registry), len(run.errors))
        return run

    def _run_domain(self, run, domain, populate, *args):
        events = []
        entities_before = len(run.registry)
        logger.debug("Collecting %s metrics", domain.name)
        try:
            populate(run, events, *args)
        except Exception as e:
            events.append(error_entry(
                "collection_error", domain.name, "domain",
                f"{domain.name} metric collection aborted: {e}",
                detail=traceback.format_exc(),
            ))
        for entry in events:
            self._report(entry)
        run.errors.extend(events)
        logger.debug("Finished %s metrics: %d new entities, %d error entries",
                     domain.name, len(run.registry) - entities_before, len(events))

    @staticmethod
    def _report(entry):
        level = _SEVERITY_LEVELS.get(entry.get("severity"), logging.ERROR)
        context = [f"domain={entry['domain']}"]
        if entry.get("entity") is not None:
            context.append(f"entity={entry['entity']!r}")
        if entry.get("query"):
            context.append(f"query={entry['query']!r}")
        logger.log(level, "%s (%s)", entry["message"], ", ".join(context))

    # ----------------------------------------------------------------------
    # Domains
    # ----------------------------------------------------------------------
    def populate_instance_metrics(self, run, events, con):
        definitions = self.catalog.generate_instance_definitions(run.version)
        for definition in definitions:
            result = self.executor.execute(con, definition, domains.INSTANCE.name)
            if not result.ok:
                events.append(result.error)
                continue
            # one sample per instance; only the first row of each query is used
            _, errors = self.attacher.attach(run.instance, domains.INSTANCE, result.records[0], reuse=True)
            events.extend(errors)

    def populate_database_metrics(self, run, events, con, resolver):
        definitions = self.catalog.generate_database_definitions(self.databases, run.version)
        self._process_definitions(events, con, definitions, domains.DATABASE, resolver)

    def populate_database_lock_metrics(self, run, events, con, resolver):
        if not con.have_extension_in_schema("tablefunc", "public"):
            events.append(error_entry(
                "extension_missing", domains.LOCK.name, "extension",
                "Crosstab function not available; database lock metric gathering not possible. "
                "To enable database lock metrics, install the postgresql contrib package for your OS "
                "and run 'CREATE EXTENSION tablefunc;' against your database's public schema",
                severity="warning",
            ))
            return
        definitions = self.catalog.generate_lock_definitions(self.databases, run.version)
        self._process_definitions(events, con, definitions, domains.LOCK, resolver)

    def populate_table_metrics(self, run, events, resolver):
        definitions = self.catalog.generate_table_definitions(self.databases, run.version)
        self._process_per_database(events, definitions, domains.TABLE, resolver)

    def populate_index_metrics(self, run, events, resolver):
        definitions = self.catalog.generate_index_definitions(self.databases, run.version)
        self._process_per_database(events, definitions, domains.INDEX, resolver)

    def populate_pgbouncer_metrics(self, run, events, resolver):
        try:
            con = self.connection_info.new_connection(PGBOUNCER_DATABASE)
        except ConnectionFailure as e:
            events.append(error_entry(
                "connection_error", domains.PGBOUNCER.name, "connection",
                f"Error creating connection to pgbouncer database: {e}",
            ))
            return

        with con:
            definitions = self.catalog.generate_pgbouncer_definitions(run.version)
            self._process_definitions(events, con, definitions, domains.PGBOUNCER, resolver,
                                      extra={"host": run.host})

    # ----------------------------------------------------------------------
    def _process_per_database(self, events, definitions, domain, resolver):
        """Open one connection per database that has definitions and release it after use."""
        for database, group in groupby(definitions, key=lambda d: d.database):
            try:
                con = self.connection_info.new_connection(database)
            except ConnectionFailure as e:
                events.append(error_entry(
                    "connection_error", domain.name, "connection",
                    f"Failed to connect to database {database}: {e}",
                    entity=database,
                ))
                continue

            with con:
                self._process_definitions(events, con, list(group), domain, resolver)

    def _process_definitions(self, events, con, definitions, domain, resolver, extra=None):
        for definition in definitions:
            result = self.executor.execute(con, definition, domain.name)
            if not result.ok:
                events.append(result.error)
                continue

            for record in result.records:
                resolution = resolver.resolve(record, domain)
                events.extend(resolution.errors)
                if resolution.entity is None:
                    continue
                _, errors = self.attacher.attach(resolution.entity, domain, record,
                                                 identity=resolution.identity, extra=extra)
                events.extend(errors)
