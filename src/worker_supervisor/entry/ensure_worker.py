"""
A minimal entry point that makes sure the worker is running.

Client hooks run this before talking to the worker: it starts the worker on
the configured port if needed and prints the worker's base URL.
"""
import sys
import logging

from worker_supervisor.config import SupervisorSettings
from worker_supervisor.log.setup import setup_logging
from worker_supervisor.supervisor import WorkerSupervisor

log = logging.getLogger(__name__)


def main() -> int:
    settings = SupervisorSettings()
    setup_logging(logging.WARNING, settings.LOGS_DIR)

    supervisor = WorkerSupervisor(settings)
    result = supervisor.ensure_running()
    if not result.success:
        log.error(f"Worker is not available: {result.error}")
        return 1

    print(supervisor.worker_url)
    return 0


if __name__ == "__main__":
    sys.exit(main())
