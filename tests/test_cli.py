import logging

import pytest

from tas_quickstart.cli import (
    CommandAction,
    UnknownCommandAction,
    cli,
    get_default_data_dir,
    parse_cli,
)
from tas_quickstart.commands import HelpCommand
from tests.helpers import run_cli


def test_default_command_is_help(tmp_path):
    action, log_path = parse_cli([])

    assert isinstance(action, CommandAction)
    assert action.command.name == "help"
    assert log_path.parent == (tmp_path / "data").resolve()
    assert log_path.name.startswith("tas-quickstart.run.")


@pytest.mark.parametrize("token, name", [("stop", "exit"), ("exit", "exit")])
def test_stop_alias(tas_dir, token, name):
    action, _ = parse_cli([token, "--tas-dir", str(tas_dir)])
    assert action.command.name == name


def test_options_reach_context(tas_dir):
    action, _ = parse_cli(
        [
            "start",
            "--tas-dir",
            str(tas_dir),
            "--url",
            "http://10.0.0.5:5000/",
            "--grace-attempts",
            "2",
            "--poll-interval",
            "0.5",
            "-y",
        ]
    )

    ctx = action.context
    assert ctx.layout.tas_dir == tas_dir.resolve()
    assert ctx.base_url == "http://10.0.0.5:5000"
    assert ctx.manager.timing.grace_attempts == 2
    assert ctx.manager.timing.poll_interval == 0.5
    assert ctx.assume_yes is True


def test_environment_defaults(tas_dir, monkeypatch):
    monkeypatch.setenv("TAS_DIR", str(tas_dir))
    monkeypatch.setenv("TAS_URL", "http://tas.internal:8080")

    action, _ = parse_cli(["test"])

    assert action.context.layout.tas_dir == tas_dir.resolve()
    assert action.context.base_url == "http://tas.internal:8080"


def test_data_dir_env(tmp_path, monkeypatch):
    monkeypatch.setenv("TAS_QUICKSTART_DATA_DIR", str(tmp_path / "elsewhere"))
    assert get_default_data_dir() == (tmp_path / "elsewhere").resolve()


def test_unknown_command(tas_dir, capsys):
    action, _ = parse_cli(["frobnicate", "--tas-dir", str(tas_dir)])

    assert isinstance(action, UnknownCommandAction)
    assert action.run() == 1
    assert "Unknown command: frobnicate" in capsys.readouterr().out


def test_commands_need_checkout(tmp_path, capsys):
    empty = tmp_path / "empty"
    empty.mkdir()

    assert cli(["start", "--tas-dir", str(empty)]) == 1
    assert "app.py not found" in capsys.readouterr().out


def test_help_works_anywhere(tmp_path, capsys):
    assert cli(["help", "--tas-dir", str(tmp_path)]) == 0
    assert "Usage:" in capsys.readouterr().out


@pytest.mark.parametrize("argv", [["-h"], ["--help"], ["start", "--help"]])
def test_help_flags_show_usage(tmp_path, capsys, argv):
    action, _ = parse_cli(argv + ["--tas-dir", str(tmp_path)])

    assert action.command.name == "help"
    assert action.run() == 0
    out = capsys.readouterr().out
    assert "Commands:" in out
    assert "usage: tas-quickstart" not in out


def test_run_log_records_command(tas_dir):
    action, log_path = parse_cli(["help", "--tas-dir", str(tas_dir)])
    action.run()
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "event=command name=help" in log_path.read_text()


def test_keyboard_interrupt(tas_dir, monkeypatch):
    def interrupted(self, ctx):
        raise KeyboardInterrupt

    monkeypatch.setattr(HelpCommand, "run", interrupted)
    assert cli(["help"]) == 1


class TestSubprocess:
    def test_help(self):
        res = run_cli("help")
        assert res.returncode == 0, res.stderr
        assert "Commands:" in res.stdout

    def test_unknown_command_exit_code(self):
        res = run_cli("frobnicate")
        assert res.returncode == 1
        assert "[ERROR] Unknown command: frobnicate" in res.stdout

    def test_start_outside_checkout(self, tmp_path):
        res = run_cli("start", "--tas-dir", str(tmp_path))
        assert res.returncode == 1
        assert "app.py not found" in res.stdout
