"""Unit tests for the CLI factory: command registration, exit codes, output."""

from __future__ import annotations

import pytest
from rich.console import Console
from typer.testing import CliRunner

from installforge.cli.app import CONFIG_ERROR_EXIT, build_cli

runner = CliRunner()


@pytest.fixture
def app(chain):
    return build_cli(chain, name="demo-install", console=Console(width=200, color_system=None))


class TestCliApp:
    """The CLI must register all expected commands and show help."""

    def test_no_args_shows_help(self, app):
        result = runner.invoke(app, [])
        # Typer's no_args_is_help may exit with 0 or 2 depending on version
        assert result.exit_code in (0, 2)
        assert "Usage" in result.output or "usage" in result.output.lower()

    def test_help_lists_commands(self, app):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("build", "plan", "list", "forget"):
            assert command in result.output

    def test_build_help_lists_options(self, app):
        result = runner.invoke(app, ["build", "--help"])
        assert result.exit_code == 0
        for option in ("--jobs", "--fail-fast", "--force", "--dry-run"):
            assert option in result.output


class TestBuildCommand:
    def test_build_all(self, app, recorder):
        result = runner.invoke(app, ["build"])
        assert result.exit_code == 0, result.output
        assert recorder.calls == ["A", "B", "C"]
        assert "all_succeeded" in result.output

    def test_build_selection(self, app, recorder):
        result = runner.invoke(app, ["build", "B", "--jobs", "1"])
        assert result.exit_code == 0, result.output
        assert recorder.calls == ["A", "B"]

    def test_partial_failure_exit_code(self, app, recorder):
        recorder.failing.add("C")
        result = runner.invoke(app, ["build"])
        assert result.exit_code == 1
        assert "C exploded" in result.output

    def test_fail_fast_exit_code(self, app, recorder):
        recorder.failing.add("A")
        result = runner.invoke(app, ["build", "--fail-fast"])
        assert result.exit_code == 2

    def test_dry_run(self, app, recorder):
        result = runner.invoke(app, ["build", "--dry-run"])
        assert result.exit_code == 0
        assert recorder.calls == []
        assert "dry run" in result.output

    def test_force(self, app, recorder):
        runner.invoke(app, ["build"])
        recorder.calls.clear()
        result = runner.invoke(app, ["build", "--force"])
        assert result.exit_code == 0
        assert recorder.calls == ["A", "B", "C"]

    def test_unknown_target(self, app):
        result = runner.invoke(app, ["build", "ghost"])
        assert result.exit_code == CONFIG_ERROR_EXIT
        assert "ghost" in result.output


class TestOtherCommands:
    def test_plan(self, app, recorder):
        result = runner.invoke(app, ["plan"])
        assert result.exit_code == 0
        assert "no recorded build" in result.output
        assert recorder.calls == []

    def test_list(self, app):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "component_build" in result.output

    def test_list_empty(self, installer):
        result = runner.invoke(build_cli(installer, console=Console(width=200)), ["list"])
        assert result.exit_code == 0
        assert "No targets registered" in result.output

    def test_forget_rebuilds_target(self, app, recorder):
        runner.invoke(app, ["build"])
        result = runner.invoke(app, ["forget", "B"])
        assert result.exit_code == 0
        assert "Forgot" in result.output
        recorder.calls.clear()
        runner.invoke(app, ["build"])
        assert recorder.calls == ["B", "C"]

    def test_forget_unknown(self, app):
        result = runner.invoke(app, ["forget", "ghost"])
        assert result.exit_code == CONFIG_ERROR_EXIT
