"""Tests for supervisor logging setup."""

import logging
from datetime import date

import pytest

from worker_supervisor.log.setup import MainFormatter, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestMainFormatter:
    """Tests for MainFormatter."""

    def make_record(self, name: str) -> logging.LogRecord:
        return logging.LogRecord(name, logging.INFO, __file__, 1, "hello %s", ("world",), None)

    def test_regular_records_are_decorated(self) -> None:
        formatted = MainFormatter().format(self.make_record("worker_supervisor.lock"))

        assert "INFO" in formatted
        assert "[worker_supervisor.lock]" in formatted
        assert formatted.endswith("hello world")

    def test_subprocess_records_pass_through(self) -> None:
        assert MainFormatter().format(self.make_record("proc.launcher")) == "hello world"


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_console_only(self) -> None:
        setup_logging(logging.WARNING)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.handlers[0].level == logging.WARNING

    def test_file_handler_writes_daily_log(self, tmp_path) -> None:
        setup_logging(logging.INFO, tmp_path / "logs")
        logging.getLogger("worker_supervisor.test").debug("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        log_file = tmp_path / "logs" / f"supervisor-{date.today().isoformat()}.log"
        assert "written to file" in log_file.read_text()

    def test_repeated_setup_does_not_duplicate_handlers(self, tmp_path) -> None:
        setup_logging(logging.INFO, tmp_path)
        setup_logging(logging.INFO, tmp_path)

        assert len(logging.getLogger().handlers) == 2
