# tests/test_executor.py
from metrics import definitions, records
from metrics.errors import QueryError
from metrics.executor import QueryExecutor


class TestQueryExecutor:
    def test_success_decodes_rows(self, fake_connection):
        con = fake_connection({"pg_stat_database": [
            {"datname": "app", "active_connections": 2},
            {"datname": "reporting", "active_connections": 5},
        ]})
        definition = definitions.DATABASE_STATS.bind(params={"databases": ["app", "reporting"]})

        result = QueryExecutor().execute(con, definition, "database")

        assert result.ok
        assert [r.datname for r in result.records] == ["app", "reporting"]
        assert all(isinstance(r, records.DatabaseStatsRecord) for r in result.records)
        assert con.log[0][2] == {"databases": ["app", "reporting"]}

    def test_query_error_is_reported_not_raised(self, fake_connection):
        con = fake_connection({"pg_stat_bgwriter": QueryError('relation "pg_stat_bgwriter" does not exist')})

        result = QueryExecutor().execute(con, definitions.INSTANCE_BGWRITER, "instance")

        assert not result.ok
        assert result.records == []
        assert result.error["type"] == "query_error"
        assert result.error["domain"] == "instance"
        assert result.error["severity"] == "error"
        assert "does not exist" in result.error["message"]
        assert result.error["query"].startswith("SELECT BG.checkpoints_timed")

    def test_zero_rows_is_low_severity(self, fake_connection):
        result = QueryExecutor().execute(fake_connection({}), definitions.INDEX_STATS, "index")

        assert not result.ok
        assert result.error["type"] == "no_data"
        assert result.error["severity"] == "debug"

    def test_decode_failure(self, fake_connection):
        con = fake_connection({"pg_stat_database": [{"datname": "app", "active_connections": "many"}]})

        result = QueryExecutor().execute(con, definitions.DATABASE_STATS, "database")

        assert result.error["type"] == "decode_error"
        assert "DatabaseStatsRecord" in result.error["message"]
