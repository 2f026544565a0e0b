"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet and verbose modes
- JSON and plain data formats, print_table
- configure_logging routing of ``syncauth`` log records
- Global instance management and convenience functions
"""

from __future__ import annotations

import json
import logging

import pytest

from syncauth import output as output_module
from syncauth.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    configure_logging,
    get_output,
    reset_output,
    set_output,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("syncauth.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("syncauth.output._is_tty", lambda: True)


@pytest.fixture()
def restore_syncauth_logger():
    """Undo handler/level changes made by configure_logging."""
    logger = logging.getLogger("syncauth")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


# ------------------------------------------------------------------ #
# OutputFormat resolution
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    """AUTO resolves based on TTY and colour settings."""

    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        mgr = OutputManager(format=OutputFormat.AUTO)
        assert mgr.format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        mgr = OutputManager(format=OutputFormat.AUTO)
        assert mgr.format == OutputFormat.RICH

    def test_no_color_flag_forces_plain_on_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        mgr = OutputManager(format=OutputFormat.AUTO, no_color=True)
        assert mgr.format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON)
        assert mgr.format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term_keeps_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# stdout vs stderr discipline
# ------------------------------------------------------------------ #


class TestStdoutStderrDiscipline:
    """Data goes to stdout, diagnostics to stderr."""

    def test_print_data_goes_to_stdout(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_data("hello world")
        captured = capfd.readouterr()
        assert "hello world" in captured.out
        assert captured.err == ""

    @pytest.mark.parametrize("method", ["info", "success", "warning", "error", "suggest"])
    def test_diagnostics_go_to_stderr(self, capfd, non_tty, method):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        getattr(mgr, method)("some message")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "some message" in captured.err

    def test_format_response_goes_to_stdout(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.format_response({"status": "Authorized"})
        captured = capfd.readouterr()
        assert json.loads(captured.out) == {"status": "Authorized"}
        assert captured.err == ""


class TestQuietAndVerbose:
    def test_quiet_suppresses_info_and_success(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.info("hidden")
        mgr.success("hidden too")
        mgr.suggest("hidden as well")
        assert capfd.readouterr().err == ""

    def test_quiet_keeps_errors_and_warnings(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.error("boom")
        mgr.warning("careful")
        err = capfd.readouterr().err
        assert "Error: boom" in err
        assert "Warning: careful" in err

    def test_debug_hidden_by_default(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.debug("secret detail")
        assert capfd.readouterr().err == ""

    def test_debug_shown_with_verbose(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
        mgr.debug("detail")
        assert "[debug] detail" in capfd.readouterr().err

    def test_progress_hidden_when_not_tty(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.progress("Waiting for the redirect ...")
        assert capfd.readouterr().err == ""

    def test_progress_shown_in_tty(self, capfd, tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.progress("Waiting for the redirect ...")
        assert "Waiting for the redirect" in capfd.readouterr().err


# ------------------------------------------------------------------ #
# Data formats
# ------------------------------------------------------------------ #


class TestPlainFormat:
    def test_dict_as_key_value(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.format_response({"status": "Authorized", "scope": "drive.file"})
        lines = capfd.readouterr().out.strip().splitlines()
        assert lines == ["status\tAuthorized", "scope\tdrive.file"]

    def test_nested_values_are_json(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.format_response({"provider": {"port": 39587}})
        assert 'provider\t{"port": 39587}' in capfd.readouterr().out


class TestPrintTable:
    def test_table_json_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.print_table(["Step", "Action"], [["1", "Create client"]])
        data = json.loads(capfd.readouterr().out)
        assert data == [{"Step": "1", "Action": "Create client"}]

    def test_table_plain_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_table(["Step", "Action"], [["1", "Create client"]], title="ignored")
        lines = capfd.readouterr().out.strip().splitlines()
        assert lines == ["Step\tAction", "1\tCreate client"]

    def test_table_rich_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.RICH, no_color=True)
        mgr.print_table(["Step", "Action"], [["1", "Create client"]])
        assert "Create client" in capfd.readouterr().out


# ------------------------------------------------------------------ #
# Logging integration
# ------------------------------------------------------------------ #


class TestConfigureLogging:
    def test_warning_level_by_default(self, non_tty, restore_syncauth_logger):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        configure_logging(mgr)
        assert restore_syncauth_logger.level == logging.WARNING
        assert restore_syncauth_logger.propagate is False

    def test_debug_level_with_verbose(self, non_tty, restore_syncauth_logger):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
        configure_logging(mgr)
        assert restore_syncauth_logger.level == logging.DEBUG

    def test_repeated_calls_keep_one_handler(self, non_tty, restore_syncauth_logger):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        configure_logging(mgr)
        configure_logging(mgr)
        assert len(restore_syncauth_logger.handlers) == 1

    def test_records_go_to_stderr(self, capfd, non_tty, restore_syncauth_logger):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        configure_logging(mgr)
        logging.getLogger("syncauth.auth.session").warning("Authorization TimedOut")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "Authorization TimedOut" in captured.err


# ------------------------------------------------------------------ #
# Global instance management
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_get_output_creates_default(self):
        assert isinstance(get_output(), OutputManager)

    def test_set_output_overrides(self):
        mgr = OutputManager(format=OutputFormat.JSON)
        set_output(mgr)
        assert get_output() is mgr

    def test_reset_output_clears(self):
        set_output(OutputManager(format=OutputFormat.JSON))
        reset_output()
        assert output_module._output is None

    def test_convenience_functions_delegate(self, capfd, non_tty):
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True))
        output_module.info("via module")
        output_module.print_data("data line")
        captured = capfd.readouterr()
        assert "via module" in captured.err
        assert "data line" in captured.out


class TestDocumentedArguments:
    @pytest.mark.parametrize(
        "name",
        [
            "format_response",
            "print_data",
            "print_table",
            "info",
            "success",
            "warning",
            "error",
            "suggest",
            "debug",
            "progress",
        ],
    )
    def test_manager_method_documents_args(self, name):
        doc = getattr(OutputManager, name).__doc__
        assert doc and "Args:" in doc

    @pytest.mark.parametrize("name", ["get_output", "set_output", "format_response", "print_table"])
    def test_module_helper_documents_interface(self, name):
        doc = getattr(output_module, name).__doc__
        assert doc and ("Args:" in doc or "Returns:" in doc)
