"""Unit tests for scripts/migrate_images.py"""

import json
import os
from unittest.mock import patch

import pytest

from migrator.error_utils import RegistryClientError
from migrator.models import ImageDescriptor, MigrationSummary, PipelineOutcome

CONFIG = {
    "from_repo": {"base_address": "src.example.com", "username": "u", "password": "p"},
    "to_repo": {"base_address": "dst.example.com", "username": "u", "password": "p"},
    "images": [
        {"name": "app", "tag": "v1", "from_prefix": "team/", "to_prefix": ""},
        {"name": "worker", "tag": "v2", "from_prefix": "team/", "to_prefix": ""},
    ],
}


@pytest.fixture(autouse=True)
def clean_environment():
    env = {k: v for k, v in os.environ.items() if k not in ("CONFIG_FILE", "DOCKER_HOST")}
    with patch.dict(os.environ, env, clear=True):
        yield


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(CONFIG))
    return str(path)


@pytest.fixture
def engine(registry_client):
    """Patch the Docker Engine client used by the script"""
    registry_client.ping.return_value = True
    with patch("scripts.migrate_images.DockerEngineClient", return_value=registry_client) as engine_cls:
        yield engine_cls


class TestMain:
    """Tests for the migrate_images entry point"""

    def test_successful_run_exits_zero(self, config_file, engine, registry_client):
        from scripts.migrate_images import main

        assert main(["-f", config_file, "--quiet-progress"]) == 0
        assert registry_client.pull.call_count == 2
        assert registry_client.remove.call_count == 4
        registry_client.close.assert_called_once()

    def test_client_built_from_config(self, config_file, engine):
        from scripts.migrate_images import main

        main(["-f", config_file, "--quiet-progress", "--docker-host", "tcp://engine:2375"])

        engine.assert_called_once_with("tcp://engine:2375", timeout=300, pool_size=2)

    def test_failed_image_exits_one(self, config_file, engine, registry_client):
        from scripts.migrate_images import main

        def push(ctx, ref, auth):
            if "worker" in ref:
                raise RegistryClientError("push", ref, "denied")
            return iter([])

        registry_client.push.side_effect = push

        assert main(["-f", config_file, "--quiet-progress"]) == 1
        assert registry_client.pull.call_count == 2

    def test_cleanup_failure_still_exits_zero(self, config_file, engine, registry_client):
        from scripts.migrate_images import main

        registry_client.remove.side_effect = RegistryClientError("delete", "x", "conflict")

        assert main(["-f", config_file, "--quiet-progress"]) == 0

    def test_invalid_config_exits_before_any_pipeline(self, tmp_path, engine, registry_client):
        from scripts.migrate_images import main

        path = tmp_path / "config.json"
        path.write_text(json.dumps({"images": [{"name": "app", "tag": "v1"}]}))

        assert main(["-f", str(path)]) == 1
        engine.assert_not_called()
        registry_client.pull.assert_not_called()

    @pytest.mark.parametrize("section", ["docker", "report"])
    def test_null_config_section_exits_one(self, tmp_path, engine, section):
        from scripts.migrate_images import main

        path = tmp_path / "config.json"
        path.write_text(json.dumps(dict(CONFIG, **{section: None})))

        assert main(["-f", str(path), "--skip-ping"]) == 1
        engine.assert_not_called()

    def test_missing_config_exits_one(self, tmp_path, engine):
        from scripts.migrate_images import main

        assert main(["-f", str(tmp_path / "nope.json")]) == 1
        engine.assert_not_called()

    def test_unreachable_engine_exits_one(self, config_file, engine, registry_client):
        from scripts.migrate_images import main

        registry_client.ping.return_value = False

        assert main(["-f", config_file]) == 1
        registry_client.pull.assert_not_called()

    def test_skip_ping(self, config_file, engine, registry_client):
        from scripts.migrate_images import main

        registry_client.ping.return_value = False

        assert main(["-f", config_file, "--skip-ping", "--quiet-progress"]) == 0
        registry_client.ping.assert_not_called()

    def test_writes_report(self, config_file, engine, tmp_path):
        from scripts.migrate_images import main

        output = tmp_path / "reports" / "migration-report.json"

        assert main(["-f", config_file, "--quiet-progress", "--output", str(output)]) == 0

        report = json.loads(output.read_text())
        assert report["summary"]["total_images"] == 2
        assert report["summary"]["succeeded"] == 2
        assert report["images"][0]["source_ref"] == "src.example.com/team/app:v1"
        assert report["images"][0]["dest_ref"] == "dst.example.com/app:v1"
        assert "password" not in json.dumps(report)

    def test_progress_copied_to_stdout(self, config_file, engine, capsysbinary):
        from scripts.migrate_images import main

        assert main(["-f", config_file, "--skip-ping"]) == 0

        out = capsysbinary.readouterr().out
        assert b'{"status":"Pulling"}' in out
        assert b'{"status":"Pushed"}' in out


class TestExitCode:
    """Tests for exit_code_for"""

    def _outcome(self, error=None):
        return PipelineOutcome(image=ImageDescriptor(name="app", tag="v1"), job=None, error=error)

    def test_all_succeeded(self):
        from scripts.migrate_images import exit_code_for

        assert exit_code_for(MigrationSummary(outcomes=[self._outcome()])) == 0

    def test_any_failed(self):
        from scripts.migrate_images import exit_code_for

        summary = MigrationSummary(outcomes=[self._outcome(), self._outcome(RuntimeError("x"))])

        assert exit_code_for(summary) == 1

    def test_cancelled(self):
        from scripts.migrate_images import exit_code_for

        summary = MigrationSummary(outcomes=[self._outcome(RuntimeError("x"))], cancelled=True)

        assert exit_code_for(summary) == 130


def test_parse_arguments_defaults():
    from scripts.migrate_images import parse_arguments

    args = parse_arguments([])

    assert args.config is None
    assert args.output is None
    assert args.log_level == "INFO"
    assert not args.quiet_progress


def test_summary_table_lists_each_image():
    from migrator.report_utils import format_summary_table

    summary = MigrationSummary(outcomes=[
        PipelineOutcome(image=ImageDescriptor(name="app", tag="v1"), job=None),
        PipelineOutcome(image=ImageDescriptor(name="worker", tag="v2"), job=None, error=RuntimeError("denied")),
    ])

    table = format_summary_table(summary)

    assert "app:v1" in table
    assert "worker:v2" in table
    assert "denied" in table
