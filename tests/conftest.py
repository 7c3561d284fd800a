"""Shared fixtures for worker supervisor tests."""

import sys
from pathlib import Path

import pytest

from worker_supervisor.config import SupervisorSettings


class FakeClock:
    """A manually advanced clock whose sleep moves time forward instead of blocking."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def settings(data_dir: Path) -> SupervisorSettings:
    """Settings whose pid, lock and log files all live in an isolated directory."""
    worker_dir = data_dir / "worker"
    return SupervisorSettings(
        data_dir=data_dir,
        WORKER_SCRIPT_PATH=worker_dir / "worker_service.py",
        WRAPPER_SCRIPT_PATH=worker_dir / "worker_wrapper.py",
        PYTHON_EXECUTABLE=sys.executable,
    )
