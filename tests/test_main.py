# tests/test_main.py
import json

import pytest

import main
from client.ingest_client import IngestError
from metrics.errors import VersionError
from orchestrator.collection_orchestrator import CollectionRun


class StubOrchestrator:
    """Replaces CollectionOrchestrator; records how it was built."""
    instances = []
    outcome = None

    def __init__(self, connection_info, databases, collect_pgbouncer=False, collect_db_locks=False):
        self.connection_info = connection_info
        self.databases = databases
        self.collect_pgbouncer = collect_pgbouncer
        self.collect_db_locks = collect_db_locks
        StubOrchestrator.instances.append(self)

    def run(self):
        if isinstance(StubOrchestrator.outcome, Exception):
            raise StubOrchestrator.outcome
        return CollectionRun(*self.connection_info.host_port())


@pytest.fixture
def stub_orchestrator(monkeypatch):
    StubOrchestrator.instances = []
    StubOrchestrator.outcome = None
    monkeypatch.setattr(main, "CollectionOrchestrator", StubOrchestrator)
    monkeypatch.setattr(main, "configure_root_logger", lambda level=None, log_file=None: None)
    monkeypatch.delenv("PGCOLLECTOR_PASSWORD", raising=False)
    return StubOrchestrator


class TestCollectCommand:
    def test_flags_reach_the_orchestrator(self, stub_orchestrator, tmp_path):
        out = tmp_path / "payload.json"
        code = main.main([
            "collect", "--hostname", "db.example", "--username", "monitor", "--password", "secret",
            "--collection-list", '{"app": ["public"]}', "--pgbouncer", "--output", str(out),
        ])

        assert code == 0
        [orch] = stub_orchestrator.instances
        assert orch.databases == {"app": ["public"]}
        assert orch.collect_pgbouncer is True
        assert orch.collect_db_locks is False
        assert orch.connection_info.host_port() == ("db.example", "5432")
        assert json.loads(out.read_text())["metadata"]["host"] == "db.example"

    def test_yaml_config_and_env_password(self, stub_orchestrator, tmp_path, monkeypatch):
        config = tmp_path / "collector.yaml"
        config.write_text("username: monitor\ncollect_db_lock_metrics: true\ncollection_list:\n  app: []\n")
        monkeypatch.setenv("PGCOLLECTOR_PASSWORD", "from-env")

        code = main.main(["collect", "--config", str(config), "--output", str(tmp_path)])

        assert code == 0
        [orch] = stub_orchestrator.instances
        assert orch.connection_info.args.password == "from-env"
        assert orch.collect_db_locks is True

    def test_invalid_configuration(self, stub_orchestrator, capsys):
        assert main.main(["collect", "--username", "monitor"]) == 2
        assert "username and password" in capsys.readouterr().err
        assert stub_orchestrator.instances == []

    def test_invalid_collection_list(self, stub_orchestrator):
        args = ["collect", "--username", "u", "--password", "p", "--collection-list", '["app"]']
        assert main.main(args) == 2

    def test_fatal_error_exits_1_without_output(self, stub_orchestrator, tmp_path):
        stub_orchestrator.outcome = VersionError("unable to parse server version 'x'")
        out = tmp_path / "payload.json"

        code = main.main(["collect", "--username", "u", "--password", "p", "--output", str(out)])

        assert code == 1
        assert not out.exists()

    def test_publish_failure_exits_1_but_writes_output(self, stub_orchestrator, tmp_path, monkeypatch):
        sent = []

        def failing_send(self, payload):
            sent.append(payload)
            raise IngestError("ingest failed with status 503")

        monkeypatch.setattr(main.IngestClient, "send", failing_send)
        out = tmp_path / "payload.json"

        code = main.main(["collect", "--username", "u", "--password", "p", "--output", str(out),
                          "--publish-url", "https://ingest.example", "--publish-token", "tkn"])

        assert code == 1
        assert out.exists()
        assert sent and sent[0]["metadata"]["host"] == "localhost"


    def test_unwritable_output_exits_1(self, stub_orchestrator, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")

        code = main.main(["collect", "--username", "u", "--password", "p",
                          "--output", str(blocker / "payload.json")])

        assert code == 1


class TestVersionCommand:
    def test_prints_version(self, capsys):
        assert main.main(["version"]) == 0
        assert capsys.readouterr().out.startswith("pgcollector ")


def test_no_command_prints_help(capsys):
    assert main.main([]) == 0
    assert "collect" in capsys.readouterr().out
