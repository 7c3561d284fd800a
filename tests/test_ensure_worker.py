"""Tests for the ensure-worker entry point."""

import logging
from unittest.mock import patch

import pytest

from worker_supervisor.entry import ensure_worker
from worker_supervisor.supervisor import FailureKind, LaunchResult


@pytest.fixture(autouse=True)
def isolated(settings):
    root = logging.getLogger()
    handlers = root.handlers[:]
    with patch.object(ensure_worker, "SupervisorSettings", return_value=settings):
        yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers


class TestMain:
    """Tests for ensure_worker.main()."""

    def test_prints_worker_url_when_running(self, capsys) -> None:
        with patch.object(ensure_worker, "WorkerSupervisor") as supervisor_cls:
            supervisor = supervisor_cls.return_value
            supervisor.ensure_running.return_value = LaunchResult.ok(1234)
            supervisor.worker_url = "http://127.0.0.1:37777"

            assert ensure_worker.main() == 0

        assert capsys.readouterr().out.strip() == "http://127.0.0.1:37777"

    def test_returns_failure_status(self, capsys) -> None:
        with patch.object(ensure_worker, "WorkerSupervisor") as supervisor_cls:
            supervisor_cls.return_value.ensure_running.return_value = LaunchResult.fail("nope", FailureKind.LAUNCH)

            assert ensure_worker.main() == 1

        assert capsys.readouterr().out == ""

    def test_missing_worker_script_fails_cleanly(self, settings) -> None:
        assert ensure_worker.main() == 1
        assert not settings.LOCK_FILE_PATH.exists()
