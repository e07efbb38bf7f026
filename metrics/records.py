# metrics/records.py
"""
Typed record shapes for query results.

Every query definition names the record class its rows decode into. A record
is a dataclass whose fields are either identity fields (database, schema,
table, index names) or metric fields tagged with a metric name and a source
type. Column names in the SQL match the field names.

Identity is exposed through explicit accessors (``database_name()``,
``schema_name()``, ``table_name()``, ``index_name()``); the base class returns
None for all of them, identity mixins override the ones they carry.
"""
from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from metrics.errors import DecodeError


class SourceType(str, Enum):
    GAUGE = "gauge"
    RATE = "rate"
    DELTA = "delta"
    ATTRIBUTE = "attribute"


def metric(name, source_type=SourceType.GAUGE, kind=int):
    """Declare a metric field: ``name`` is the published metric key."""
    return field(default=None, metadata={"metric_name": name, "source_type": source_type, "kind": kind})


def attribute(name):
    return field(default=None, metadata={"metric_name": name, "source_type": SourceType.ATTRIBUTE, "kind": str})


def identity():
    return field(default=None, metadata={"identity": True, "kind": str})


def _coerce(value, kind, column):
    if value is None:
        return None
    if isinstance(value, bool):
        raise DecodeError(f"column {column!r}: boolean value {value!r} is not a {kind.__name__}")
    try:
        if kind is str:
            return value if isinstance(value, str) else str(value)
        if kind is float:
            return float(value)
        # int
        if isinstance(value, int):
            return value
        number = Decimal(value) if isinstance(value, (float, str)) else value
        if not isinstance(number, Decimal) or number != number.to_integral_value():
            raise DecodeError(f"column {column!r}: {value!r} is not an integer")
        return int(number)
    except (ValueError, TypeError, InvalidOperation, OverflowError) as e:
        raise DecodeError(f"column {column!r}: cannot convert {value!r} to {kind.__name__}: {e}") from e


@dataclass
class Record:
    @classmethod
    def from_row(cls, row):
        """Decode one result row (a column -> value mapping)."""
        if not hasattr(row, "keys"):
            raise DecodeError(f"{cls.__name__}: expected a mapping row, got {type(row).__name__}")
        values = {}
        for f in fields(cls):
            if f.name in row:
                values[f.name] = _coerce(row[f.name], f.metadata.get("kind", str), f.name)
        return cls(**values)

    @classmethod
    def metric_fields(cls):
        return [f for f in fields(cls) if "metric_name" in f.metadata]

    def metric_values(self):
        """Yield ``(metric_name, source_type, value)`` for every metric field."""
        for f in self.metric_fields():
            yield f.metadata["metric_name"], f.metadata["source_type"], getattr(self, f.name)

    def database_name(self) -> Optional[str]:
        return None

    def schema_name(self) -> Optional[str]:
        return None

    def table_name(self) -> Optional[str]:
        return None

    def index_name(self) -> Optional[str]:
        return None


# ----------------------------------------------------------------------
# Identity mixins
# ----------------------------------------------------------------------

@dataclass
class DatabaseScoped(Record):
    datname: Optional[str] = identity()

    def database_name(self):
        return self.datname


@dataclass
class TableScoped(DatabaseScoped):
    schemaname: Optional[str] = identity()
    relname: Optional[str] = identity()

    def schema_name(self):
        return self.schemaname

    def table_name(self):
        return self.relname


@dataclass
class IndexScoped(TableScoped):
    indexrelname: Optional[str] = identity()

    def index_name(self):
        return self.indexrelname


@dataclass
class PgBouncerScoped(Record):
    database: Optional[str] = identity()

    def database_name(self):
        return self.database


# ----------------------------------------------------------------------
# Instance
# ----------------------------------------------------------------------

@dataclass
class BgwriterRecord(Record):
    scheduled_checkpoints_performed: Optional[int] = metric("bgwriter.checkpointsScheduledPerSecond", SourceType.RATE)
    requested_checkpoints_performed: Optional[int] = metric("bgwriter.checkpointsRequestedPerSecond", SourceType.RATE)
    buffers_written_by_checkpoint: Optional[int] = metric("bgwriter.buffersWrittenForCheckpointsPerSecond", SourceType.RATE)
    buffers_written_by_background_writer: Optional[int] = metric("bgwriter.buffersWrittenByBackgroundWriterPerSecond", SourceType.RATE)
    background_writer_stops: Optional[int] = metric("bgwriter.backgroundWriterStopsPerSecond", SourceType.RATE)
    buffers_written_by_backend: Optional[int] = metric("bgwriter.buffersWrittenByBackendPerSecond", SourceType.RATE)
    buffers_allocated: Optional[int] = metric("bgwriter.buffersAllocatedPerSecond", SourceType.RATE)


@dataclass
class CheckpointTimingRecord(Record):
    time_writing_checkpoint_files_to_disk: Optional[float] = metric(
        "bgwriter.checkpointWriteTimeInMillisecondsPerSecond", SourceType.RATE, float)
    time_synchronizing_checkpoint_files_to_disk: Optional[float] = metric(
        "bgwriter.checkpointSyncTimeInMillisecondsPerSecond", SourceType.RATE, float)
    times_backend_executed_own_fsync: Optional[int] = metric("bgwriter.backendFsyncCallsPerSecond", SourceType.RATE)


@dataclass
class CheckpointerRecord(Record):
    """pg_stat_checkpointer (17+) joined with what is left of pg_stat_bgwriter."""
    scheduled_checkpoints_performed: Optional[int] = metric("bgwriter.checkpointsScheduledPerSecond", SourceType.RATE)
    requested_checkpoints_performed: Optional[int] = metric("bgwriter.checkpointsRequestedPerSecond", SourceType.RATE)
    buffers_written_by_checkpoint: Optional[int] = metric("bgwriter.buffersWrittenForCheckpointsPerSecond", SourceType.RATE)
    time_writing_checkpoint_files_to_disk: Optional[float] = metric(
        "bgwriter.checkpointWriteTimeInMillisecondsPerSecond", SourceType.RATE, float)
    time_synchronizing_checkpoint_files_to_disk: Optional[float] = metric(
        "bgwriter.checkpointSyncTimeInMillisecondsPerSecond", SourceType.RATE, float)
    buffers_written_by_background_writer: Optional[int] = metric("bgwriter.buffersWrittenByBackgroundWriterPerSecond", SourceType.RATE)
    background_writer_stops: Optional[int] = metric("bgwriter.backgroundWriterStopsPerSecond", SourceType.RATE)
    buffers_allocated: Optional[int] = metric("bgwriter.buffersAllocatedPerSecond", SourceType.RATE)


# ----------------------------------------------------------------------
# Database
# ----------------------------------------------------------------------

@dataclass
class DatabaseStatsRecord(DatabaseScoped):
    active_connections: Optional[int] = metric("db.connections", SourceType.GAUGE)
    transactions_committed: Optional[int] = metric("db.commitsPerSecond", SourceType.RATE)
    transactions_rolled_back: Optional[int] = metric("db.rollbacksPerSecond", SourceType.RATE)
    block_reads: Optional[int] = metric("db.readsPerSecond", SourceType.RATE)
    buffer_hits: Optional[int] = metric("db.bufferHitsPerSecond", SourceType.RATE)
    rows_returned: Optional[int] = metric("db.rowsReturnedPerSecond", SourceType.RATE)
    rows_fetched: Optional[int] = metric("db.rowsFetchedPerSecond", SourceType.RATE)
    rows_inserted: Optional[int] = metric("db.rowsInsertedPerSecond", SourceType.RATE)
    rows_updated: Optional[int] = metric("db.rowsUpdatedPerSecond", SourceType.RATE)
    rows_deleted: Optional[int] = metric("db.rowsDeletedPerSecond", SourceType.RATE)
    database_size: Optional[int] = metric("db.sizeInBytes", SourceType.GAUGE)


@dataclass
class DatabaseConflictsRecord(DatabaseScoped):
    queries_canceled_due_to_dropped_tablespaces: Optional[int] = metric("db.conflicts.tablespacePerSecond", SourceType.RATE)
    queries_canceled_due_to_lock_timeouts: Optional[int] = metric("db.conflicts.locksPerSecond", SourceType.RATE)
    queries_canceled_due_to_old_snapshots: Optional[int] = metric("db.conflicts.snapshotPerSecond", SourceType.RATE)
    queries_canceled_due_to_pinned_buffers: Optional[int] = metric("db.conflicts.bufferpinPerSecond", SourceType.RATE)
    queries_canceled_due_to_deadlocks: Optional[int] = metric("db.conflicts.deadlockPerSecond", SourceType.RATE)


@dataclass
class DatabaseIoRecord(DatabaseScoped):
    temporary_files_created: Optional[int] = metric("db.tempFilesCreatedPerSecond", SourceType.RATE)
    temporary_bytes_written: Optional[int] = metric("db.tempWrittenInBytesPerSecond", SourceType.RATE)
    deadlocks: Optional[int] = metric("db.deadlocksPerSecond", SourceType.RATE)
    time_spent_reading_data: Optional[float] = metric("db.readTimeInMillisecondsPerSecond", SourceType.RATE, float)
    time_spent_writing_data: Optional[float] = metric("db.writeTimeInMillisecondsPerSecond", SourceType.RATE, float)


@dataclass
class DatabaseLocksRecord(DatabaseScoped):
    access_exclusive_lock: Optional[int] = metric("db.locks.accessExclusiveLock")
    access_share_lock: Optional[int] = metric("db.locks.accessShareLock")
    exclusive_lock: Optional[int] = metric("db.locks.exclusiveLock")
    row_exclusive_lock: Optional[int] = metric("db.locks.rowExclusiveLock")
    row_share_lock: Optional[int] = metric("db.locks.rowShareLock")
    share_lock: Optional[int] = metric("db.locks.shareLock")
    share_row_exclusive_lock: Optional[int] = metric("db.locks.shareRowExclusiveLock")
    share_update_exclusive_lock: Optional[int] = metric("db.locks.shareUpdateExclusiveLock")


# ----------------------------------------------------------------------
# Table / index
# ----------------------------------------------------------------------

@dataclass
class TableStatsRecord(TableScoped):
    total_size: Optional[int] = metric("table.totalSizeInBytes")
    index_size: Optional[int] = metric("table.indexSizeInBytes")
    live_rows: Optional[int] = metric("table.liveRows")
    dead_rows: Optional[int] = metric("table.deadRows")
    heap_blocks_read: Optional[int] = metric("table.heapBlocksReadPerSecond", SourceType.RATE)
    heap_blocks_hit: Optional[int] = metric("table.heapBlocksHitPerSecond", SourceType.RATE)
    index_blocks_read: Optional[int] = metric("table.indexBlocksReadPerSecond", SourceType.RATE)
    index_blocks_hit: Optional[int] = metric("table.indexBlocksHitPerSecond", SourceType.RATE)
    toast_blocks_read: Optional[int] = metric("table.toastBlocksReadPerSecond", SourceType.RATE)
    toast_blocks_hit: Optional[int] = metric("table.toastBlocksHitPerSecond", SourceType.RATE)
    index_toast_blocks_read: Optional[int] = metric("table.indexToastBlocksReadPerSecond", SourceType.RATE)
    index_toast_blocks_hit: Optional[int] = metric("table.indexToastBlocksHitPerSecond", SourceType.RATE)
    seconds_since_last_vacuum: Optional[float] = metric("table.lastVacuum", SourceType.GAUGE, float)
    seconds_since_last_autovacuum: Optional[float] = metric("table.lastAutoVacuum", SourceType.GAUGE, float)
    seconds_since_last_analyze: Optional[float] = metric("table.lastAnalyze", SourceType.GAUGE, float)
    seconds_since_last_autoanalyze: Optional[float] = metric("table.lastAutoAnalyze", SourceType.GAUGE, float)
    sequential_scans: Optional[int] = metric("table.sequentialScansPerSecond", SourceType.RATE)
    sequential_scan_rows_fetched: Optional[int] = metric("table.sequentialScanRowsFetchedPerSecond", SourceType.RATE)
    index_scans: Optional[int] = metric("table.indexScansPerSecond", SourceType.RATE)
    index_scan_rows_fetched: Optional[int] = metric("table.indexScanRowsFetchedPerSecond", SourceType.RATE)
    rows_inserted: Optional[int] = metric("table.rowsInsertedPerSecond", SourceType.RATE)
    rows_updated: Optional[int] = metric("table.rowsUpdatedPerSecond", SourceType.RATE)
    rows_deleted: Optional[int] = metric("table.rowsDeletedPerSecond", SourceType.RATE)


@dataclass
class TableMaintenanceRecord(TableScoped):
    rows_inserted_since_vacuum: Optional[int] = metric("table.rowsInsertedSinceVacuum")
    rows_modified_since_analyze: Optional[int] = metric("table.rowsModifiedSinceAnalyze")


@dataclass
class IndexStatsRecord(IndexScoped):
    index_size: Optional[int] = metric("index.sizeInBytes")
    index_scans: Optional[int] = metric("index.scansPerSecond", SourceType.RATE)
    tuples_read: Optional[int] = metric("index.rowsReadPerSecond", SourceType.RATE)
    tuples_fetched: Optional[int] = metric("index.rowsFetchedPerSecond", SourceType.RATE)


# ----------------------------------------------------------------------
# PgBouncer
# ----------------------------------------------------------------------

@dataclass
class PgBouncerStatsRecord(PgBouncerScoped):
    """SHOW STATS. Covers the pre-1.8 column set (requests) and the 1.8+ one (xact/query)."""
    total_xact_count: Optional[int] = metric("pgbouncer.stats.transactionsPerSecond", SourceType.RATE)
    total_query_count: Optional[int] = metric("pgbouncer.stats.queriesPerSecond", SourceType.RATE)
    total_requests: Optional[int] = metric("pgbouncer.stats.requestsPerSecond", SourceType.RATE)
    total_received: Optional[int] = metric("pgbouncer.stats.bytesInPerSecond", SourceType.RATE)
    total_sent: Optional[int] = metric("pgbouncer.stats.bytesOutPerSecond", SourceType.RATE)
    total_xact_time: Optional[int] = metric("pgbouncer.stats.totalTransactionDurationInMicrosecondsPerSecond", SourceType.RATE)
    total_query_time: Optional[int] = metric("pgbouncer.stats.totalQueryDurationInMicrosecondsPerSecond", SourceType.RATE)
    total_wait_time: Optional[int] = metric("pgbouncer.stats.totalWaitTimeInMicrosecondsPerSecond", SourceType.RATE)
    avg_xact_count: Optional[int] = metric("pgbouncer.stats.avgTransactionCount")
    avg_query_count: Optional[int] = metric("pgbouncer.stats.avgQueryCount")
    avg_req: Optional[int] = metric("pgbouncer.stats.avgRequestsPerSecond")
    avg_recv: Optional[int] = metric("pgbouncer.stats.avgBytesIn")
    avg_sent: Optional[int] = metric("pgbouncer.stats.avgBytesOut")
    avg_xact_time: Optional[int] = metric("pgbouncer.stats.avgTransactionDurationInMicroseconds")
    avg_query_time: Optional[int] = metric("pgbouncer.stats.avgQueryDurationInMicroseconds")
    avg_query: Optional[int] = metric("pgbouncer.stats.avgQueryDurationInMicroseconds")
    avg_wait_time: Optional[int] = metric("pgbouncer.stats.avgWaitTimeInMicroseconds")


@dataclass
class PgBouncerPoolsRecord(PgBouncerScoped):
    user: Optional[str] = attribute("user")
    pool_mode: Optional[str] = attribute("poolMode")
    cl_active: Optional[int] = metric("pgbouncer.pools.clientConnectionsActive")
    cl_waiting: Optional[int] = metric("pgbouncer.pools.clientConnectionsWaiting")
    sv_active: Optional[int] = metric("pgbouncer.pools.serverConnectionsActive")
    sv_idle: Optional[int] = metric("pgbouncer.pools.serverConnectionsIdle")
    sv_used: Optional[int] = metric("pgbouncer.pools.serverConnectionsUsed")
    sv_tested: Optional[int] = metric("pgbouncer.pools.serverConnectionsTested")
    sv_login: Optional[int] = metric("pgbouncer.pools.serverConnectionsLogin")
    maxwait: Optional[int] = metric("pgbouncer.pools.maxwaitInSeconds")

