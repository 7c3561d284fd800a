"""Tests for the filesystem startup lock."""

import json
import os
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from worker_supervisor.supervisor.lock import LockToken, StartupLock

OTHER_PID = 424242


@pytest.fixture
def lock_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "worker.lock"


def write_token(path: Path, owner_pid: int, acquired_at: float) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"owner_pid": owner_pid, "acquired_at": acquired_at}))


class TestLockToken:
    """Tests for LockToken parsing."""

    def test_parses_valid_token(self) -> None:
        token = LockToken.from_json('{"owner_pid": 12, "acquired_at": 99}')
        assert token == LockToken(owner_pid=12, acquired_at=99.0)

    @pytest.mark.parametrize("content", [
        "not json",
        "[]",
        '{"owner_pid": "12", "acquired_at": 1.0}',
        '{"owner_pid": true, "acquired_at": 1.0}',
        '{"owner_pid": 12}',
    ])
    def test_rejects_malformed_token(self, content: str) -> None:
        with pytest.raises(ValueError):
            LockToken.from_json(content)


class TestTryAcquire:
    """Tests for StartupLock.try_acquire()."""

    def test_acquires_and_writes_token(self, lock_path: Path, fake_clock) -> None:
        lock = StartupLock(lock_path, clock=fake_clock)

        assert lock.try_acquire() is True
        assert lock.read_token() == LockToken(owner_pid=os.getpid(), acquired_at=fake_clock.now)

    def test_second_acquire_without_release_fails(self, lock_path: Path) -> None:
        lock = StartupLock(lock_path)

        assert lock.try_acquire() is True
        assert lock.try_acquire() is False

    def test_fails_while_live_owner_holds_lock(self, lock_path: Path, fake_clock) -> None:
        write_token(lock_path, OTHER_PID, fake_clock.now)
        lock = StartupLock(lock_path, clock=fake_clock)

        with patch("worker_supervisor.supervisor.lock.process_utils.is_process_alive", return_value=True):
            assert lock.try_acquire() is False

        assert lock.read_token().owner_pid == OTHER_PID

    def test_leaves_no_temp_files(self, lock_path: Path) -> None:
        lock = StartupLock(lock_path)
        lock.try_acquire()
        lock.try_acquire()

        assert sorted(p.name for p in lock_path.parent.iterdir()) == ["worker.lock"]

    def test_falls_back_to_exclusive_create_without_hard_links(self, lock_path: Path) -> None:
        lock = StartupLock(lock_path)

        with patch("worker_supervisor.supervisor.lock.os.link", side_effect=NotImplementedError):
            assert lock.try_acquire() is True
            assert lock.try_acquire() is False

        assert lock.read_token().owner_pid == os.getpid()

    def test_threads_racing_acquire_exactly_once(self, lock_path: Path) -> None:
        lock = StartupLock(lock_path)
        barrier = threading.Barrier(8)
        results = []

        def contender():
            barrier.wait()
            results.append(lock.try_acquire())

        threads = [threading.Thread(target=contender) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1


class TestStaleLockReclamation:
    """Tests for StartupLock.clean_stale_lock()."""

    def test_old_lock_reclaimed_even_if_owner_alive(self, lock_path: Path, fake_clock) -> None:
        write_token(lock_path, OTHER_PID, fake_clock.now - 31)
        lock = StartupLock(lock_path, stale_after=30, clock=fake_clock)

        with patch("worker_supervisor.supervisor.lock.process_utils.is_process_alive", return_value=True):
            assert lock.try_acquire() is True

        assert lock.read_token().owner_pid == os.getpid()

    def test_dead_owner_reclaimed_regardless_of_age(self, lock_path: Path, fake_clock) -> None:
        write_token(lock_path, OTHER_PID, fake_clock.now)
        lock = StartupLock(lock_path, clock=fake_clock)

        with patch("worker_supervisor.supervisor.lock.process_utils.is_process_alive", return_value=False):
            assert lock.try_acquire() is True

        assert lock.read_token().owner_pid == os.getpid()

    def test_corrupt_lock_is_removed(self, lock_path: Path) -> None:
        lock_path.parent.mkdir(parents=True)
        lock_path.write_text("not-valid-lock-content")
        lock = StartupLock(lock_path)

        lock.clean_stale_lock()

        assert not lock_path.exists()

    def test_fresh_lock_of_live_owner_is_kept(self, lock_path: Path, fake_clock) -> None:
        write_token(lock_path, OTHER_PID, fake_clock.now - 5)
        lock = StartupLock(lock_path, clock=fake_clock)

        with patch("worker_supervisor.supervisor.lock.process_utils.is_process_alive", return_value=True):
            lock.clean_stale_lock()

        assert lock_path.exists()

    def test_missing_lock_is_noop(self, lock_path: Path) -> None:
        StartupLock(lock_path).clean_stale_lock()
        assert not lock_path.exists()


class TestRelease:
    """Tests for StartupLock.release()."""

    def test_owner_release_removes_lock(self, lock_path: Path) -> None:
        lock = StartupLock(lock_path)
        lock.try_acquire()

        lock.release()

        assert not lock_path.exists()

    def test_non_owner_release_is_noop(self, lock_path: Path) -> None:
        owner = StartupLock(lock_path, owner_pid=os.getpid())
        intruder = StartupLock(lock_path, owner_pid=OTHER_PID)
        owner.try_acquire()

        intruder.release()

        assert lock_path.exists()
        assert owner.read_token().owner_pid == os.getpid()

    def test_release_without_lock_is_noop(self, lock_path: Path) -> None:
        StartupLock(lock_path).release()
        assert not lock_path.exists()


class TestAcquireWithRetry:
    """Tests for StartupLock.acquire_with_retry()."""

    def test_gives_up_after_retry_budget(self, lock_path: Path, fake_clock) -> None:
        write_token(lock_path, OTHER_PID, fake_clock.now)
        lock = StartupLock(lock_path, clock=fake_clock, sleep=fake_clock.sleep)

        with patch("worker_supervisor.supervisor.lock.process_utils.is_process_alive", return_value=True), \
                patch("worker_supervisor.supervisor.polling.time.monotonic", fake_clock):
            assert lock.acquire_with_retry(max_retries=5, interval=0.1) is False

        assert sum(fake_clock.sleeps) == pytest.approx(0.5)

    def test_succeeds_once_holder_releases(self, lock_path: Path) -> None:
        holder = StartupLock(lock_path, owner_pid=os.getpid())
        holder.try_acquire()
        attempts = []

        def release_on_second_sleep(seconds: float) -> None:
            attempts.append(seconds)
            if len(attempts) == 2:
                holder.release()

        waiter = StartupLock(lock_path, sleep=release_on_second_sleep)

        assert waiter.acquire_with_retry(max_retries=50, interval=0.01) is True
        assert len(attempts) == 2
