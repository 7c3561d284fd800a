import time
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from worker_supervisor.config import SupervisorSettings
from worker_supervisor.supervisor import process_utils, shutdown
from worker_supervisor.supervisor.health import HealthProber
from worker_supervisor.supervisor.launcher import Launcher, create_launcher
from worker_supervisor.supervisor.lock import StartupLock
from worker_supervisor.supervisor.persistence import StateStore, WorkerState
from worker_supervisor.supervisor.platform_profile import PlatformProfile
from worker_supervisor.supervisor.results import FailureKind, LaunchResult, SupervisorState, WorkerStatus

log = logging.getLogger(__name__)

MIN_PORT = 1024
MAX_PORT = 65535


def format_uptime(seconds: float) -> str:
    """Formats an uptime as its two most significant units, e.g. '3h 4m'."""
    seconds = max(0, int(seconds))
    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


class WorkerSupervisor:
    """
    Manages the lifecycle of the single background worker.

    At most one worker runs system-wide: the state file records it, and a
    filesystem lock serialises concurrent start attempts across processes.
    Every operation reports failures as results instead of raising.
    """

    def __init__(
        self,
        settings: Optional[SupervisorSettings] = None,
        profile: Optional[PlatformProfile] = None,
        launcher: Optional[Launcher] = None,
        state_store: Optional[StateStore] = None,
        lock: Optional[StartupLock] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initializes the supervisor; every collaborator is built from settings unless injected."""
        self.settings = settings or SupervisorSettings()
        self.profile = profile or PlatformProfile.detect()
        self.state_store = state_store or StateStore(self.settings.PID_FILE_PATH)
        self.lock = lock or StartupLock(self.settings.LOCK_FILE_PATH, stale_after=self.settings.LOCK_STALE_TIMEOUT)
        self.launcher = launcher or create_launcher(
            self.profile, self.settings, self.state_store, HealthProber(self.settings, self.profile)
        )
        self._sleep = sleep
        self.state = SupervisorState.STOPPED

    @property
    def script_path(self):
        """The script spawned for this platform: the wrapper where the profile requires one."""
        if self.profile.use_wrapper_spawn:
            return self.settings.WRAPPER_SCRIPT_PATH
        return self.settings.WORKER_SCRIPT_PATH

    @property
    def worker_url(self) -> str:
        """The HTTP address of the running worker, or of the configured port when none is known."""
        state = self.state_store.read()
        return self.settings.get_worker_url(state.port if state else None)

    def _live_state(self) -> Optional[WorkerState]:
        """Returns the recorded worker if its pid is alive, removing the state file otherwise."""
        state = self.state_store.read()
        if state is None:
            return None
        if process_utils.is_process_alive(state.pid):
            return state
        log.info(f"Worker PID {state.pid} is no longer running. Removing stale state file.")
        self.state_store.remove()
        return None

    def is_running(self) -> bool:
        """Returns True if the recorded worker process is alive."""
        running = self._live_state() is not None
        if running:
            self.state = SupervisorState.RUNNING
        elif self.state is SupervisorState.RUNNING:
            self.state = SupervisorState.STOPPED
        return running

    def start(self, port: int) -> LaunchResult:
        """
        Starts the worker on `port` unless one is already running.

        :param port: The listening port, within [1024, 65535].
        :return: A LaunchResult with the pid of the running worker on success.
        """
        if not isinstance(port, int) or isinstance(port, bool) or not MIN_PORT <= port <= MAX_PORT:
            return LaunchResult.fail(
                f"Invalid port {port!r}. Must be between {MIN_PORT} and {MAX_PORT}", FailureKind.VALIDATION
            )

        existing = self._live_state()
        if existing:
            log.info(f"Worker already running with PID {existing.pid} on port {existing.port}.")
            self.state = SupervisorState.RUNNING
            return LaunchResult.ok(existing.pid)

        self.state = SupervisorState.STARTING
        if not self.lock.acquire_with_retry(self.settings.LOCK_MAX_RETRIES, self.settings.LOCK_RETRY_INTERVAL):
            return self._await_concurrent_start()

        try:
            # Another process may have finished starting the worker while we waited for the lock.
            existing = self._live_state()
            if existing:
                log.info(f"Worker was started concurrently with PID {existing.pid}.")
                self.state = SupervisorState.RUNNING
                return LaunchResult.ok(existing.pid)

            script_path = self.script_path
            if not script_path.exists():
                self.state = SupervisorState.STOPPED
                return LaunchResult.fail(f"Worker script not found at {script_path}", FailureKind.LAUNCH)

            try:
                self.settings.LOGS_DIR.mkdir(parents=True, exist_ok=True)
                result = self.launcher.launch(script_path, port, self.settings.get_log_file_path())
            except OSError as e:
                log.error(f"Worker launch failed: {e}", exc_info=True)
                result = LaunchResult.fail(f"Worker launch failed: {e}", FailureKind.LAUNCH)
            self.state = SupervisorState.RUNNING if result.success else SupervisorState.STOPPED
            return result
        finally:
            self.lock.release()

    def _await_concurrent_start(self) -> LaunchResult:
        """Waits one readiness window for a peer that holds the startup lock, then re-checks."""
        log.warning("Startup lock is held by another process. Waiting for it to start the worker...")
        self._sleep(self.settings.HEALTH_CHECK_TIMEOUT)
        existing = self._live_state()
        if existing:
            self.state = SupervisorState.RUNNING
            return LaunchResult.ok(existing.pid)
        self.state = SupervisorState.STOPPED
        return LaunchResult.fail("Failed to acquire startup lock and worker not running", FailureKind.CONTENTION)

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stops the worker gracefully, killing it if it does not exit within `timeout`.

        The state file is removed whatever happens, so a failed kill never
        leaves the worker reported as running forever.

        :param timeout: Seconds to wait for a graceful exit.
        :return: True once the stop sequence has completed.
        """
        state = self.state_store.read()
        if state is None:
            self.state = SupervisorState.STOPPED
            return True

        self.state = SupervisorState.STOPPING
        timeout = self.settings.PROCESS_STOP_TIMEOUT if timeout is None else timeout
        try:
            shutdown.terminate_worker(
                state.pid, self.profile, timeout,
                interval=self.settings.PROCESS_EXIT_CHECK_INTERVAL, sleep=self._sleep,
            )
        except Exception as e:
            log.error(f"Error while stopping worker PID {state.pid}: {e}", exc_info=True)
        finally:
            self.state_store.remove()
            self.launcher.reap()
            self.state = SupervisorState.STOPPED
        return True

    def restart(self, port: int) -> LaunchResult:
        """Stops any running worker, then starts a fresh one on `port`."""
        self.stop()
        return self.start(port)

    def status(self) -> WorkerStatus:
        """
        Reports whether the worker is running, with its pid, port and uptime.

        A state file pointing at a dead pid is removed as a side effect.
        """
        state = self._live_state()
        if state is None:
            if self.state is SupervisorState.RUNNING:
                self.state = SupervisorState.STOPPED
            return WorkerStatus(running=False)

        self.state = SupervisorState.RUNNING
        uptime_seconds = (datetime.now(timezone.utc) - state.started_at_datetime).total_seconds()
        return WorkerStatus(
            running=True,
            pid=state.pid,
            port=state.port,
            uptime=format_uptime(uptime_seconds),
            uptime_seconds=uptime_seconds,
            started_at=state.started_at,
            version=state.version,
        )

    def ensure_running(self, port: Optional[int] = None) -> LaunchResult:
        """Starts the worker on `port` (the configured worker port by default) if it is not running."""
        return self.start(self.settings.WORKER_PORT if port is None else port)
