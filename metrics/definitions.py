# metrics/definitions.py
"""
Query definition catalog.

Each domain has a list of version-gated ``QueryDefinition`` objects. The
``generate_*`` methods of ``QueryCatalog`` filter them against the resolved
server version and bind the topology into their parameters. They do no I/O,
so version gating can be exercised without a server.
"""
import dataclasses
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Type

from metrics import records
from metrics.version import Version, version_in_range


@dataclass(frozen=True)
class QueryDefinition:
    """A SQL query, the record shape its rows decode into and its version window."""
    query: str
    record_type: Type[records.Record]
    min_version: Optional[Version] = None  # inclusive
    max_version: Optional[Version] = None  # exclusive
    params: Optional[Mapping[str, Any]] = None
    database: Optional[str] = None  # None: run on the primary connection
    schema: Optional[str] = None

    def is_eligible(self, version: Version) -> bool:
        return version_in_range(version, self.min_version, self.max_version)

    def bind(self, **changes) -> "QueryDefinition":
        return dataclasses.replace(self, **changes)

    def describe(self) -> str:
        """Short single-line form for log messages."""
        text = " ".join(self.query.split())
        return text if len(text) <= 120 else text[:117] + "..."


def eligible(definitions, version: Version):
    return [d for d in definitions if d.is_eligible(version)]


V9_1 = Version(9, 1, 0)
V9_2 = Version(9, 2, 0)
V13 = Version(13, 0, 0)
V17 = Version(17, 0, 0)


# ----------------------------------------------------------------------
# Instance
# ----------------------------------------------------------------------

INSTANCE_BGWRITER = QueryDefinition(
    query="""
        SELECT
            BG.checkpoints_timed AS scheduled_checkpoints_performed,
            BG.checkpoints_req AS requested_checkpoints_performed,
            BG.buffers_checkpoint AS buffers_written_by_checkpoint,
            BG.buffers_clean AS buffers_written_by_background_writer,
            BG.maxwritten_clean AS background_writer_stops,
            BG.buffers_backend AS buffers_written_by_backend,
            BG.buffers_alloc AS buffers_allocated
        FROM pg_stat_bgwriter BG;
    """,
    record_type=records.BgwriterRecord,
    max_version=V17,
)

INSTANCE_CHECKPOINT_TIMING = QueryDefinition(
    query="""
        SELECT
            BG.checkpoint_write_time AS time_writing_checkpoint_files_to_disk,
            BG.checkpoint_sync_time AS time_synchronizing_checkpoint_files_to_disk,
            BG.buffers_backend_fsync AS times_backend_executed_own_fsync
        FROM pg_stat_bgwriter BG;
    """,
    record_type=records.CheckpointTimingRecord,
    min_version=V9_2,
    max_version=V17,
)

# 17 moved the checkpoint counters out of pg_stat_bgwriter and dropped the backend ones
INSTANCE_CHECKPOINTER = QueryDefinition(
    query="""
        SELECT
            CP.num_timed AS scheduled_checkpoints_performed,
            CP.num_requested AS requested_checkpoints_performed,
            CP.buffers_written AS buffers_written_by_checkpoint,
            CP.write_time AS time_writing_checkpoint_files_to_disk,
            CP.sync_time AS time_synchronizing_checkpoint_files_to_disk,
            BG.buffers_clean AS buffers_written_by_background_writer,
            BG.maxwritten_clean AS background_writer_stops,
            BG.buffers_alloc AS buffers_allocated
        FROM pg_stat_checkpointer CP, pg_stat_bgwriter BG;
    """,
    record_type=records.CheckpointerRecord,
    min_version=V17,
)


# ----------------------------------------------------------------------
# Database
# ----------------------------------------------------------------------

DATABASE_STATS = QueryDefinition(
    query="""
        SELECT
            D.datname,
            SD.numbackends AS active_connections,
            SD.xact_commit AS transactions_committed,
            SD.xact_rollback AS transactions_rolled_back,
            SD.blks_read AS block_reads,
            SD.blks_hit AS buffer_hits,
            SD.tup_returned AS rows_returned,
            SD.tup_fetched AS rows_fetched,
            SD.tup_inserted AS rows_inserted,
            SD.tup_updated AS rows_updated,
            SD.tup_deleted AS rows_deleted,
            pg_database_size(D.datname) AS database_size
        FROM pg_stat_database SD
        INNER JOIN pg_database D ON D.datname = SD.datname
        WHERE D.datistemplate = FALSE AND D.datname = ANY(%(databases)s);
    """,
    record_type=records.DatabaseStatsRecord,
)

DATABASE_CONFLICTS = QueryDefinition(
    query="""
        SELECT
            D.datname,
            SDC.confl_tablespace AS queries_canceled_due_to_dropped_tablespaces,
            SDC.confl_lock AS queries_canceled_due_to_lock_timeouts,
            SDC.confl_snapshot AS queries_canceled_due_to_old_snapshots,
            SDC.confl_bufferpin AS queries_canceled_due_to_pinned_buffers,
            SDC.confl_deadlock AS queries_canceled_due_to_deadlocks
        FROM pg_stat_database_conflicts SDC
        INNER JOIN pg_database D ON D.datname = SDC.datname
        WHERE D.datistemplate = FALSE AND D.datname = ANY(%(databases)s);
    """,
    record_type=records.DatabaseConflictsRecord,
    min_version=V9_1,
)

DATABASE_IO = QueryDefinition(
    query="""
        SELECT
            D.datname,
            SD.temp_files AS temporary_files_created,
            SD.temp_bytes AS temporary_bytes_written,
            SD.deadlocks AS deadlocks,
            SD.blk_read_time AS time_spent_reading_data,
            SD.blk_write_time AS time_spent_writing_data
        FROM pg_stat_database SD
        INNER JOIN pg_database D ON D.datname = SD.datname
        WHERE D.datistemplate = FALSE AND D.datname = ANY(%(databases)s);
    """,
    record_type=records.DatabaseIoRecord,
    min_version=V9_2,
)

# needs the tablefunc extension for crosstab()
DATABASE_LOCKS = QueryDefinition(
    query="""
        SELECT
            database AS datname,
            COALESCE(access_exclusive_lock, 0) AS access_exclusive_lock,
            COALESCE(access_share_lock, 0) AS access_share_lock,
            COALESCE(exclusive_lock, 0) AS exclusive_lock,
            COALESCE(row_exclusive_lock, 0) AS row_exclusive_lock,
            COALESCE(row_share_lock, 0) AS row_share_lock,
            COALESCE(share_lock, 0) AS share_lock,
            COALESCE(share_row_exclusive_lock, 0) AS share_row_exclusive_lock,
            COALESCE(share_update_exclusive_lock, 0) AS share_update_exclusive_lock
        FROM crosstab(
            'SELECT pg_database.datname AS db, lower(mode) AS mode, count(mode)
               FROM pg_locks
               INNER JOIN pg_database ON pg_database.oid = pg_locks.database
               GROUP BY 1, 2
               ORDER BY 1',
            $$VALUES ('accessexclusivelock'), ('accesssharelock'), ('exclusivelock'), ('rowexclusivelock'),
                     ('rowsharelock'), ('sharelock'), ('sharerowexclusivelock'), ('shareupdateexclusivelock')$$
        ) AS data (
            database varchar,
            access_exclusive_lock numeric,
            access_share_lock numeric,
            exclusive_lock numeric,
            row_exclusive_lock numeric,
            row_share_lock numeric,
            share_lock numeric,
            share_row_exclusive_lock numeric,
            share_update_exclusive_lock numeric
        )
        WHERE database = ANY(%(databases)s);
    """,
    record_type=records.DatabaseLocksRecord,
)


# ----------------------------------------------------------------------
# Table / index (bound per database and schema)
# ----------------------------------------------------------------------

TABLE_STATS = QueryDefinition(
    query="""
        SELECT
            current_database() AS datname,
            S.schemaname,
            S.relname,
            pg_total_relation_size(S.relid) AS total_size,
            pg_indexes_size(S.relid) AS index_size,
            S.n_live_tup AS live_rows,
            S.n_dead_tup AS dead_rows,
            IO.heap_blks_read AS heap_blocks_read,
            IO.heap_blks_hit AS heap_blocks_hit,
            IO.idx_blks_read AS index_blocks_read,
            IO.idx_blks_hit AS index_blocks_hit,
            IO.toast_blks_read AS toast_blocks_read,
            IO.toast_blks_hit AS toast_blocks_hit,
            IO.tidx_blks_read AS index_toast_blocks_read,
            IO.tidx_blks_hit AS index_toast_blocks_hit,
            EXTRACT(EPOCH FROM (now() - S.last_vacuum)) AS seconds_since_last_vacuum,
            EXTRACT(EPOCH FROM (now() - S.last_autovacuum)) AS seconds_since_last_autovacuum,
            EXTRACT(EPOCH FROM (now() - S.last_analyze)) AS seconds_since_last_analyze,
            EXTRACT(EPOCH FROM (now() - S.last_autoanalyze)) AS seconds_since_last_autoanalyze,
            S.seq_scan AS sequential_scans,
            S.seq_tup_read AS sequential_scan_rows_fetched,
            S.idx_scan AS index_scans,
            S.idx_tup_fetch AS index_scan_rows_fetched,
            S.n_tup_ins AS rows_inserted,
            S.n_tup_upd AS rows_updated,
            S.n_tup_del AS rows_deleted
        FROM pg_stat_user_tables S
        INNER JOIN pg_statio_user_tables IO ON IO.relid = S.relid
        WHERE S.schemaname = %(schema)s;
    """,
    record_type=records.TableStatsRecord,
)

TABLE_MAINTENANCE = QueryDefinition(
    query="""
        SELECT
            current_database() AS datname,
            S.schemaname,
            S.relname,
            S.n_ins_since_vacuum AS rows_inserted_since_vacuum,
            S.n_mod_since_analyze AS rows_modified_since_analyze
        FROM pg_stat_user_tables S
        WHERE S.schemaname = %(schema)s;
    """,
    record_type=records.TableMaintenanceRecord,
    min_version=V13,
)

INDEX_STATS = QueryDefinition(
    query="""
        SELECT
            current_database() AS datname,
            S.schemaname,
            S.relname,
            S.indexrelname,
            pg_relation_size(S.indexrelid) AS index_size,
            S.idx_scan AS index_scans,
            S.idx_tup_read AS tuples_read,
            S.idx_tup_fetch AS tuples_fetched
        FROM pg_stat_user_indexes S
        WHERE S.schemaname = %(schema)s;
    """,
    record_type=records.IndexStatsRecord,
)


# ----------------------------------------------------------------------
# PgBouncer admin console
# ----------------------------------------------------------------------

PGBOUNCER_STATS = QueryDefinition(query="SHOW STATS;", record_type=records.PgBouncerStatsRecord)
PGBOUNCER_POOLS = QueryDefinition(query="SHOW POOLS;", record_type=records.PgBouncerPoolsRecord)


class QueryCatalog:
    """
    Definition lists per domain. Subclass and override the tuples to change
    what gets collected.
    """

    instance_definitions = (INSTANCE_BGWRITER, INSTANCE_CHECKPOINT_TIMING, INSTANCE_CHECKPOINTER)
    database_definitions = (DATABASE_STATS, DATABASE_CONFLICTS, DATABASE_IO)
    lock_definitions = (DATABASE_LOCKS,)
    table_definitions = (TABLE_STATS, TABLE_MAINTENANCE)
    index_definitions = (INDEX_STATS,)
    pgbouncer_definitions = (PGBOUNCER_STATS, PGBOUNCER_POOLS)

    def generate_instance_definitions(self, version):
        return eligible(self.instance_definitions, version)

    def generate_database_definitions(self, databases, version):
        return self._bind_databases(self.database_definitions, databases, version)

    def generate_lock_definitions(self, databases, version):
        return self._bind_databases(self.lock_definitions, databases, version)

    def generate_table_definitions(self, databases, version):
        return self._bind_schemas(self.table_definitions, databases, version)

    def generate_index_definitions(self, databases, version):
        return self._bind_schemas(self.index_definitions, databases, version)

    def generate_pgbouncer_definitions(self, version):
        # pgbouncer has its own versioning; the server version does not gate these
        return list(self.pgbouncer_definitions)

    @staticmethod
    def _bind_databases(definitions, databases, version):
        names = list(databases or ())
        if not names:
            return []
        return [d.bind(params={"databases": names}) for d in eligible(definitions, version)]

    @staticmethod
    def _bind_schemas(definitions, databases, version):
        """One definition per (database, schema, eligible definition), grouped by database."""
        selected = eligible(definitions, version)
        bound = []
        for database, schemas in (databases or {}).items():
            for schema in schemas or ():
                for definition in selected:
                    bound.append(definition.bind(database=database, schema=schema, params={"schema": schema}))
        return bound
