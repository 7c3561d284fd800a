import os
import shutil
import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from importlib.metadata import PackageNotFoundError, version as package_version

from worker_supervisor.config import SupervisorSettings
from worker_supervisor.supervisor import process_utils, shutdown
from worker_supervisor.supervisor.health import HealthProber
from worker_supervisor.supervisor.persistence import StateStore, WorkerState
from worker_supervisor.supervisor.platform_profile import PlatformProfile
from worker_supervisor.supervisor.results import FailureKind, LaunchResult

log = logging.getLogger(__name__)


def get_supervisor_version() -> str:
    """Returns the installed package version recorded alongside each worker."""
    try:
        return package_version("worker-supervisor")
    except PackageNotFoundError:
        return "unknown"


class Launcher(ABC):
    """
    Spawns the detached worker process, records its state, and waits for readiness.

    Subclasses only implement `_spawn`, which returns the real worker pid or
    a failed LaunchResult. Writing WorkerState and the readiness wait are
    shared, so every platform satisfies the same `launch` contract.
    """

    def __init__(self, settings: SupervisorSettings, state_store: StateStore, prober: HealthProber) -> None:
        self.settings = settings
        self.state_store = state_store
        self.prober = prober

    def build_env(self, port: int, log_path: Path, env: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Returns the environment for the worker: the caller's, plus its port and log file."""
        worker_env = dict(os.environ if env is None else env)
        worker_env[self.settings.WORKER_PORT_ENV] = str(port)
        worker_env[self.settings.WORKER_LOG_ENV] = str(log_path)
        return worker_env

    def resolve_interpreter(self) -> Optional[str]:
        """Returns the full path of the configured Python interpreter, or None if it cannot be found."""
        configured = str(self.settings.PYTHON_EXECUTABLE)
        if Path(configured).is_file():
            return configured
        return shutil.which(configured)

    def launch(self, script_path: Path, port: int, log_path: Path, env: Optional[Dict[str, str]] = None) -> LaunchResult:
        """
        Starts the worker and blocks until it is ready or has failed.

        :param script_path: The Python script to run.
        :param port: The port the worker must listen on.
        :param log_path: The append-mode log file for the worker's output.
        :param env: Base environment; defaults to the current process environment.
        :return: A LaunchResult with the worker pid on success.
        """
        interpreter = self.resolve_interpreter()
        if interpreter is None:
            return LaunchResult.fail(
                f"Python interpreter '{self.settings.PYTHON_EXECUTABLE}' not found", FailureKind.LAUNCH
            )

        log.info(f"Starting worker {script_path} on port {port}...")
        spawned = self._spawn(interpreter, Path(script_path), self.build_env(port, log_path, env), Path(log_path))
        if isinstance(spawned, LaunchResult):
            log.error(f"Failed to start worker: {spawned.error}")
            return spawned

        pid = spawned
        try:
            self.state_store.write(WorkerState.create(pid=pid, port=port, version=get_supervisor_version()))
        except OSError as e:
            # A worker must never keep running without a state file
            log.error(f"Failed to record worker state, stopping PID {pid}: {e}")
            shutdown.terminate_worker(
                pid, self.prober.profile, self.settings.PROCESS_STOP_TIMEOUT,
                interval=self.settings.PROCESS_EXIT_CHECK_INTERVAL,
            )
            self.reap()
            return LaunchResult.fail(f"Failed to record worker state: {e}", FailureKind.LAUNCH)
        log.info(f"Worker spawned with PID: {pid}")
        return self.prober.wait_for_health(pid, port)

    def reap(self) -> None:
        """Collects the exit status of a worker this launcher spawned, if it has exited."""

    @abstractmethod
    def _spawn(self, interpreter: str, script_path: Path, env: Dict[str, str], log_path: Path):
        """Spawns the worker, returning its pid or a failed LaunchResult."""


class DirectSpawnLauncher(Launcher):
    """Spawns the interpreter directly as a detached process with its output appended to the log file."""

    def __init__(self, settings: SupervisorSettings, state_store: StateStore, prober: HealthProber) -> None:
        super().__init__(settings, state_store, prober)
        self.process: Optional[subprocess.Popen] = None

    def reap(self) -> None:
        if self.process is not None and self.process.poll() is not None:
            self.process = None

    def _spawn(self, interpreter: str, script_path: Path, env: Dict[str, str], log_path: Path):
        log_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            # The parent's handle is closed after spawn; the child keeps its own copy.
            with log_path.open("ab") as log_file:
                p = subprocess.Popen(
                    [interpreter, str(script_path)],
                    stdin=subprocess.DEVNULL,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    cwd=str(script_path.parent),
                    env=env,
                    **process_utils.get_popen_creation_flags(),
                )
        except OSError as e:
            log.error(f"Failed to spawn worker process: {e}", exc_info=True)
            return LaunchResult.fail(f"Failed to spawn worker process: {e}", FailureKind.LAUNCH)

        if not p.pid:
            return LaunchResult.fail("Failed to get PID from spawned process", FailureKind.LAUNCH)
        # Held so the child can be reaped once it exits
        self.process = p
        return p.pid


class WrapperSpawnLauncher(Launcher):
    """
    Spawns the worker through PowerShell's Start-Process with a hidden window.

    PowerShell prints the id of the process it started, which is the real
    worker pid. The worker (normally a wrapper script) is responsible for its
    own logging through the log path passed in its environment.
    """

    def build_command(self, interpreter: str, script_path: Path, env: Dict[str, str]) -> List[str]:
        """Returns the PowerShell invocation that starts the worker and prints its pid."""
        esc = process_utils.escape_powershell_string
        env_assignments = "; ".join(
            f"$env:{name}='{esc(env[name])}'"
            for name in (self.settings.WORKER_PORT_ENV, self.settings.WORKER_LOG_ENV)
        )
        ps_command = (
            f"{env_assignments}; "
            f"Start-Process -FilePath '{esc(interpreter)}' "
            f"-ArgumentList '\"{esc(str(script_path))}\"' "
            f"-WorkingDirectory '{esc(str(script_path.parent))}' "
            "-WindowStyle Hidden -PassThru | Select-Object -ExpandProperty Id"
        )
        return ["powershell", "-NoProfile", "-NonInteractive", "-Command", ps_command]

    def _spawn(self, interpreter: str, script_path: Path, env: Dict[str, str], log_path: Path):
        log_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            result = subprocess.run(
                self.build_command(interpreter, script_path, env),
                capture_output=True,
                timeout=self.settings.WRAPPER_SPAWN_TIMEOUT,
                env=env,
                check=False,
                **process_utils.get_hidden_window_flags(),
            )
        except subprocess.TimeoutExpired:
            return LaunchResult.fail(
                f"PowerShell spawn timed out after {self.settings.WRAPPER_SPAWN_TIMEOUT:.0f}s", FailureKind.LAUNCH
            )
        except OSError as e:
            log.error(f"Failed to run PowerShell: {e}", exc_info=True)
            return LaunchResult.fail(f"Failed to run PowerShell: {e}", FailureKind.LAUNCH)

        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        if stderr:
            logging.getLogger("proc.launcher").warning(stderr)
        if result.returncode != 0:
            return LaunchResult.fail(f"PowerShell spawn failed: {stderr or 'unknown error'}", FailureKind.LAUNCH)

        output = result.stdout.decode("utf-8", errors="replace").strip()
        try:
            return int(output.splitlines()[-1].strip())
        except (IndexError, ValueError):
            return LaunchResult.fail(f"Failed to get PID from PowerShell output: {output!r}", FailureKind.LAUNCH)


def create_launcher(
    profile: PlatformProfile, settings: SupervisorSettings, state_store: StateStore, prober: HealthProber
) -> Launcher:
    """Selects the launcher variant described by the platform profile."""
    launcher_cls = WrapperSpawnLauncher if profile.use_wrapper_spawn else DirectSpawnLauncher
    log.debug(f"Using {launcher_cls.__name__} for platform '{profile.name}'.")
    return launcher_cls(settings, state_store, prober)
