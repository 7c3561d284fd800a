"""
This module contains the default configuration settings for the worker supervisor.
It defines the data directory layout, the worker launch paths, and every timeout
used by the lock, health check and shutdown sequences.
Values can be overridden through environment variables or a `.env` file.
"""

import os
import sys
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
DATA_DIR = pathlib.Path(os.getenv("WORKER_SUPERVISOR_DATA_DIR", pathlib.Path.home() / ".worker-supervisor"))
PID_FILE_NAME = "worker.pid"
LOCK_FILE_NAME = "worker.lock"
LOGS_DIR_NAME = "logs"
OVERRIDES_FILE_NAME = "settings.json"

#* --- Worker Launch Settings ---
WORKER_HOST = "127.0.0.1"
WORKER_PORT = int(os.getenv("WORKER_SUPERVISOR_WORKER_PORT", "37777"))
WORKER_PORT_ENV = "WORKER_SUPERVISOR_PORT"
WORKER_LOG_ENV = "WORKER_SUPERVISOR_LOG_FILE"
WORKER_SCRIPT_PATH = pathlib.Path(os.getenv("WORKER_SCRIPT_PATH", DATA_DIR / "worker" / "worker_service.py"))
# Hidden-window wrapper, owns the real worker so a tree kill frees its socket
WRAPPER_SCRIPT_PATH = pathlib.Path(os.getenv("WRAPPER_SCRIPT_PATH", DATA_DIR / "worker" / "worker_wrapper.py"))
READINESS_PATH = "/api/readiness"

#* --- Python Executable Configuration ---
# Defaults to the interpreter running the supervisor
PYTHON_EXECUTABLE = os.getenv("PYTHON_EXECUTABLE", sys.executable)

#* --- Timeouts (seconds) ---
PROCESS_STOP_TIMEOUT = 5.0
PROCESS_EXIT_CHECK_INTERVAL = 0.1
HEALTH_CHECK_TIMEOUT = 10.0
HEALTH_CHECK_INTERVAL = 0.2
HEALTH_CHECK_REQUEST_TIMEOUT = 1.0
WRAPPER_SPAWN_TIMEOUT = 10.0

#* --- Startup Lock Settings ---
LOCK_STALE_TIMEOUT = 30.0
LOCK_RETRY_INTERVAL = 0.1
LOCK_MAX_RETRIES = 50  # 5 seconds max wait for the lock

#* --- MODIFIABLE SETTINGS (Changeable through settings.json) ---
MODIFIABLE_SETTINGS = {
    "WORKER_PORT",
    "WORKER_SCRIPT_PATH", "WRAPPER_SCRIPT_PATH", "PYTHON_EXECUTABLE",
    "PROCESS_STOP_TIMEOUT", "HEALTH_CHECK_TIMEOUT",
}
