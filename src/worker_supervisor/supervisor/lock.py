import os
import json
import errno
import time
import uuid
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Callable, Optional

from worker_supervisor.supervisor import process_utils
from worker_supervisor.supervisor.polling import poll_until

log = logging.getLogger(__name__)

# errno values meaning "this filesystem cannot hard-link"
_LINK_UNSUPPORTED_ERRNOS = {errno.EPERM, errno.ENOTSUP, errno.EOPNOTSUPP, errno.EXDEV, errno.EMLINK}


@dataclass(frozen=True)
class LockToken:
    """The contents of the startup lock file."""
    owner_pid: int
    acquired_at: float

    def to_json(self) -> str:
        return json.dumps({"owner_pid": self.owner_pid, "acquired_at": self.acquired_at})

    @classmethod
    def from_json(cls, content: str) -> "LockToken":
        """
        Parses a token, raising ValueError on anything malformed.
        """
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError("Lock token is not a JSON object")
        owner_pid, acquired_at = data.get("owner_pid"), data.get("acquired_at")
        if not isinstance(owner_pid, int) or isinstance(owner_pid, bool):
            raise ValueError(f"Invalid lock owner pid: {owner_pid!r}")
        if not isinstance(acquired_at, (int, float)) or isinstance(acquired_at, bool):
            raise ValueError(f"Invalid lock timestamp: {acquired_at!r}")
        return cls(owner_pid=owner_pid, acquired_at=float(acquired_at))


class StartupLock:
    """
    A filesystem lock guarding the worker startup sequence across processes.

    The lock file is only ever created with an atomic create-if-absent
    operation and is never rewritten in place. A token is stale, and may be
    removed by anyone, when it is older than `stale_after`, when its owner pid
    is no longer alive, or when its contents cannot be parsed.

    Pid reuse by an unrelated process can make a dead owner look alive; such a
    lock is still reclaimed once it ages past `stale_after`.
    """

    def __init__(
        self,
        lock_path: Path,
        stale_after: float = 30.0,
        owner_pid: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.lock_path = Path(lock_path)
        self.stale_after = stale_after
        self.owner_pid = owner_pid if owner_pid is not None else os.getpid()
        self._clock = clock
        self._sleep = sleep

    def read_token(self) -> Optional[LockToken]:
        """Returns the current token, or None if the lock is free or corrupt."""
        try:
            return LockToken.from_json(self.lock_path.read_text())
        except (OSError, ValueError):
            return None

    def try_acquire(self) -> bool:
        """
        Attempts a single, non-blocking acquisition.

        Stale locks are reclaimed first. Returns False if another valid token
        exists or the lock file could not be created.
        """
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error(f"Cannot create lock directory '{self.lock_path.parent}': {e}")
            return False

        self.clean_stale_lock()

        token = LockToken(owner_pid=self.owner_pid, acquired_at=self._clock())
        try:
            acquired = self._create_exclusive(token)
        except OSError as e:
            log.error(f"Failed to create lock file '{self.lock_path}': {e}")
            return False

        if acquired:
            log.debug(f"Startup lock acquired by PID {self.owner_pid}.")
        return acquired

    def _create_exclusive(self, token: LockToken) -> bool:
        """
        Publishes `token` at the lock path only if no lock file exists.

        The token is written to a private temp file and hard-linked into place,
        so the lock never exists without its full contents. Filesystems without
        hard links fall back to O_CREAT|O_EXCL.
        """
        temp_path = self.lock_path.with_name(f"{self.lock_path.name}.{self.owner_pid}.{uuid.uuid4().hex}.tmp")
        try:
            temp_path.write_text(token.to_json())
            try:
                os.link(temp_path, self.lock_path)
                return True
            except FileExistsError:
                return False
            except (NotImplementedError, PermissionError):
                pass
            except OSError as e:
                if e.errno is None or e.errno not in _LINK_UNSUPPORTED_ERRNOS:
                    raise
        finally:
            temp_path.unlink(missing_ok=True)

        try:
            fd = os.open(str(self.lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        try:
            os.write(fd, token.to_json().encode())
        finally:
            os.close(fd)
        return True

    def acquire_with_retry(self, max_retries: int = 50, interval: float = 0.1) -> bool:
        """
        Polls `try_acquire` at a fixed interval until it succeeds or the retry budget runs out.

        :param max_retries: Number of retry intervals to wait.
        :param interval: Seconds between attempts.
        :return: True if the lock was acquired.
        """
        acquired = poll_until(self.try_acquire, interval, max_retries * interval, sleep=self._sleep)
        if not acquired:
            log.warning(f"Could not acquire startup lock '{self.lock_path}' within {max_retries * interval:.1f}s.")
        return bool(acquired)

    def release(self) -> None:
        """Removes the lock file if, and only if, this caller owns it."""
        token = self.read_token()
        if token is None or token.owner_pid != self.owner_pid:
            return
        try:
            self.lock_path.unlink()
            log.debug(f"Startup lock released by PID {self.owner_pid}.")
        except FileNotFoundError:
            pass

    def clean_stale_lock(self) -> None:
        """Removes the lock file if it is too old, orphaned, or corrupt."""
        try:
            content = self.lock_path.read_text()
        except FileNotFoundError:
            return
        except OSError as e:
            log.warning(f"Could not read lock file '{self.lock_path}': {e}")
            return

        try:
            token = LockToken.from_json(content)
        except ValueError:
            log.warning(f"Removing corrupt startup lock '{self.lock_path}'.")
            self._remove()
            return

        age = self._clock() - token.acquired_at
        if age > self.stale_after:
            log.warning(f"Removing stale startup lock held by PID {token.owner_pid} ({age:.1f}s old).")
            self._remove()
        elif not process_utils.is_process_alive(token.owner_pid):
            log.warning(f"Removing startup lock of dead PID {token.owner_pid}.")
            self._remove()

    def _remove(self) -> None:
        try:
            self.lock_path.unlink(missing_ok=True)
        except OSError as e:
            log.error(f"Failed to remove lock file '{self.lock_path}': {e}")
