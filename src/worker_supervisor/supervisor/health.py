import time
import logging
import requests
from typing import Callable, Optional

from worker_supervisor.config import SupervisorSettings
from worker_supervisor.supervisor import process_utils
from worker_supervisor.supervisor.polling import poll_until
from worker_supervisor.supervisor.platform_profile import PlatformProfile
from worker_supervisor.supervisor.results import FailureKind, LaunchResult

log = logging.getLogger(__name__)


class HealthProber:
    """
    Waits for a freshly spawned worker to become ready.

    Each poll first checks that the worker process is still alive, then
    requests the readiness endpoint. Connection errors and per-request
    timeouts only mean "not ready yet"; the overall deadline is the only
    thing that ends an unsuccessful wait.
    """

    def __init__(
        self,
        settings: SupervisorSettings,
        profile: PlatformProfile,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.profile = profile
        # Only a session created here is closed here
        self._owns_session = session is None
        self.session = session or requests.Session()
        self._sleep = sleep

    def close(self) -> None:
        """Releases pooled connections held by a session this prober created."""
        if self._owns_session:
            self.session.close()

    def readiness_url(self, port: int) -> str:
        return f"{self.settings.get_worker_url(port)}{self.settings.READINESS_PATH}"

    def is_ready(self, port: int) -> bool:
        """Performs a single readiness request; any 2xx status counts as ready."""
        try:
            response = self.session.get(self.readiness_url(port), timeout=self.settings.HEALTH_CHECK_REQUEST_TIMEOUT)
        except requests.exceptions.RequestException as e:
            log.debug(f"Worker on port {port} not ready yet: {e}")
            return False
        return 200 <= response.status_code < 300

    def wait_for_health(self, pid: int, port: int, timeout: Optional[float] = None) -> LaunchResult:
        """
        Polls the worker until it is ready, dies, or the deadline elapses.

        :param pid: The pid of the spawned worker.
        :param port: The port the worker was told to listen on.
        :param timeout: Base deadline in seconds, scaled by the platform profile.
        :return: A LaunchResult describing the outcome.
        """
        base_timeout = self.settings.HEALTH_CHECK_TIMEOUT if timeout is None else timeout
        deadline = base_timeout * self.profile.health_timeout_multiplier

        def probe() -> Optional[LaunchResult]:
            if not process_utils.is_process_alive(pid):
                message = self.profile.describe_failure(
                    f"Worker process {pid} died during startup", port, self.settings.LOGS_DIR
                )
                return LaunchResult.fail(message, FailureKind.HEALTH)
            if self.is_ready(port):
                return LaunchResult.ok(pid)
            return None

        log.info(f"Waiting up to {deadline:.1f}s for worker PID {pid} on port {port}...")
        try:
            result = poll_until(probe, self.settings.HEALTH_CHECK_INTERVAL, deadline, sleep=self._sleep)
        finally:
            self.close()
        if result is None:
            message = self.profile.describe_failure(
                f"Readiness check timed out after {deadline:.1f}s", port, self.settings.LOGS_DIR
            )
            result = LaunchResult.fail(message, FailureKind.HEALTH)

        if result.success:
            log.info(f"Worker PID {pid} is ready on port {port}.")
        else:
            log.error(f"Worker startup failed: {result.error}")
        return result
