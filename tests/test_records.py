# tests/test_records.py
from decimal import Decimal

import pytest

from metrics import records
from metrics.errors import DecodeError
from metrics.records import SourceType


class TestFromRow:
    def test_decodes_identity_and_metrics(self):
        rec = records.DatabaseStatsRecord.from_row({
            "datname": "app",
            "active_connections": 4,
            "transactions_committed": Decimal("120"),
            "database_size": "8192",
        })
        assert rec.database_name() == "app"
        assert rec.active_connections == 4
        assert rec.transactions_committed == 120
        assert rec.database_size == 8192

    def test_absent_columns_stay_none_and_extra_columns_are_ignored(self):
        rec = records.PgBouncerStatsRecord.from_row({
            "database": "pgbouncer",
            "total_requests": 10,
            "some_future_column": "x",
        })
        assert rec.total_requests == 10
        assert rec.total_xact_count is None

    def test_float_fields_accept_decimal(self):
        rec = records.TableStatsRecord.from_row({"seconds_since_last_vacuum": Decimal("12.5")})
        assert rec.seconds_since_last_vacuum == 12.5

    @pytest.mark.parametrize("value", ["abc", Decimal("1.5"), 2.5, True])
    def test_incompatible_int_values_raise(self, value):
        with pytest.raises(DecodeError):
            records.DatabaseStatsRecord.from_row({"active_connections": value})

    def test_non_mapping_row_raises(self):
        with pytest.raises(DecodeError):
            records.DatabaseStatsRecord.from_row(("app", 1))


class TestIdentityAccessors:
    def test_defaults_are_none(self):
        rec = records.BgwriterRecord()
        assert rec.database_name() is None
        assert rec.schema_name() is None
        assert rec.table_name() is None
        assert rec.index_name() is None

    def test_index_record_exposes_all_scopes(self):
        rec = records.IndexStatsRecord(datname="app", schemaname="public", relname="users", indexrelname="users_pkey")
        assert (rec.database_name(), rec.schema_name(), rec.table_name(), rec.index_name()) == (
            "app", "public", "users", "users_pkey")

    def test_pgbouncer_database_column(self):
        assert records.PgBouncerPoolsRecord(database="app").database_name() == "app"


class TestMetricValues:
    def test_yields_name_type_and_value(self):
        rec = records.DatabaseStatsRecord(datname="app", active_connections=3)
        values = {name: (source_type, value) for name, source_type, value in rec.metric_values()}
        assert values["db.connections"] == (SourceType.GAUGE, 3)
        assert values["db.commitsPerSecond"] == (SourceType.RATE, None)
        assert "datname" not in values

    def test_attribute_fields(self):
        names = {f.metadata["metric_name"]: f.metadata["source_type"] for f in records.PgBouncerPoolsRecord.metric_fields()}
        assert names["user"] == SourceType.ATTRIBUTE
        assert names["poolMode"] == SourceType.ATTRIBUTE
