"""
Tests for observability — console logging setup and per-run log files.
"""

import logging
from datetime import datetime
from pathlib import Path

import pytest

from pdkconverge.core.observability.logging_config import (
    TOOL_LOGGER,
    attach_run_log,
    detach_run_log,
    run_log_path,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    detach_run_log()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    @pytest.mark.parametrize("name,level", [
        ("DEBUG", logging.DEBUG),
        ("info", logging.INFO),
        ("WARNING", logging.WARNING),
        ("bogus", logging.WARNING),
        ("", logging.WARNING),
    ])
    def test_levels(self, name, level):
        setup_logging(name)
        root = logging.getLogger()
        assert root.level == level
        assert len(root.handlers) == 1

    def test_tool_output_filtered_from_console(self):
        setup_logging("INFO")
        console = logging.getLogger().handlers[0]
        tool = logging.LogRecord(TOOL_LOGGER, logging.INFO, __file__, 1, "line", None, None)
        other = logging.LogRecord("pdkconverge.core", logging.INFO, __file__, 1, "msg", None, None)
        assert not console.filter(tool)
        assert console.filter(other)

    def test_tool_output_shown_when_debugging(self):
        setup_logging("DEBUG")
        console = logging.getLogger().handlers[0]
        tool = logging.LogRecord(TOOL_LOGGER, logging.INFO, __file__, 1, "line", None, None)
        assert console.filter(tool)


class TestRunLog:
    def test_run_log_path_is_unique(self, tmp_path: Path):
        now = datetime(2025, 1, 2, 3, 4, 5)
        first = run_log_path(tmp_path, now)
        assert first.name == "run-20250102_030405.log"
        first.write_text("")
        assert run_log_path(tmp_path, now).name == "run-20250102_030405-1.log"

    def test_attach_records_debug(self, tmp_path: Path):
        setup_logging("WARNING")
        path = attach_run_log(tmp_path / "logs" / "run.log")
        logging.getLogger("pdkconverge.test").debug("hidden on console")
        logging.getLogger(TOOL_LOGGER).info("$ port -q installed")
        detach_run_log()
        text = path.read_text()
        assert "hidden on console" in text
        assert "$ port -q installed" in text

    def test_detach_is_idempotent(self):
        detach_run_log()
        detach_run_log()
