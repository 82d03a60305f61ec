"""
Unit Tests for the command-line entry point
"""

import json
from unittest.mock import patch

import pytest

import main
from worklog.perception.window import WindowProbeError
from worklog.system.config import AgentConfig


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(main, "configure_logging", lambda verbose, log_file: None)
    for name in ("AWAGENT_CONFIG", "AWAGENT_SERVER_URL", "AWAGENT_MACHINE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"git": {"repositories": [], "roots": []}}), encoding="utf-8")
    return str(path)


class TestCli:
    """Test suite for the CLI."""

    def test_parser(self):
        args = main.build_parser().parse_args(["--mode", "window", "--test", "-v", "--machine", "box"])
        assert args.mode == "window"
        assert args.test is True
        assert args.verbose is True
        assert args.machine == "box"

    def test_parser_rejects_unknown_mode(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args(["--mode", "telepathy"])

    def test_apply_overrides(self):
        args = main.build_parser().parse_args(["--aw-url", "http://aw:5600", "--mode", "filesystem"])
        config = main.apply_overrides(AgentConfig(), args)
        assert config.activitywatch.base_url == "http://aw:5600"
        assert config.session.mode == "filesystem"

    def test_config_error_exit_code(self, tmp_path):
        assert main.cli(["--config", str(tmp_path / "missing.json")]) == main.EXIT_CONFIG_ERROR

    def test_runs_agent(self, config_file):
        with patch.object(main, "main") as run_main, patch.object(main.asyncio, "run") as run:
            assert main.cli(["--config", config_file, "--test"]) == 0

        run.assert_called_once()
        config = run_main.call_args.args[0]
        assert run_main.call_args.kwargs == {"test_mode": True}
        assert config.git.roots == []

    def test_startup_failure_exit_code(self, config_file):
        with patch.object(main, "main"), \
                patch.object(main.asyncio, "run", side_effect=WindowProbeError("unsupported platform")):
            assert main.cli(["--config", config_file]) == main.EXIT_CONFIG_ERROR

    def test_keyboard_interrupt(self, config_file):
        with patch.object(main, "main"), patch.object(main.asyncio, "run", side_effect=KeyboardInterrupt):
            assert main.cli(["--config", config_file]) == 0
