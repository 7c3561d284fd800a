import time
import logging
from typing import Callable

from worker_supervisor.supervisor import process_utils
from worker_supervisor.supervisor.polling import poll_until
from worker_supervisor.supervisor.platform_profile import PlatformProfile

log = logging.getLogger(__name__)


def terminate_worker(
    pid: int,
    profile: PlatformProfile,
    timeout: float,
    interval: float = 0.1,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Runs the graceful-then-forced shutdown sequence for the worker.

    Where the platform requires it, the whole process tree is stopped so the
    worker's listening socket is released.

    :param pid: The worker pid.
    :param profile: Platform profile deciding whether to stop the process tree.
    :param timeout: Seconds to wait for a graceful exit before killing.
    :param interval: Seconds between liveness checks.
    :return: True if the worker exited gracefully, False if it had to be killed.
    """
    processes = process_utils.collect_process_tree(pid, include_children=profile.kill_process_tree)
    if not processes:
        log.info(f"Worker PID {pid} is not running.")
        return True

    log.info(f"Stopping worker PID {pid} ({len(processes)} process(es))...")
    process_utils.terminate_processes(processes)

    def all_exited() -> bool:
        return not any(process_utils.is_process_alive(p.pid) for p in processes)

    if poll_until(all_exited, interval, timeout, sleep=sleep):
        log.info(f"Worker PID {pid} stopped gracefully.")
        return True

    alive = [p for p in processes if process_utils.is_process_alive(p.pid)]
    log.warning(f"{len(alive)} process(es) did not terminate within {timeout:.1f}s. Forcing shutdown...")
    process_utils.kill_processes(alive)
    return False
