import sys
import psutil
import logging
import subprocess
from typing import Any, Dict, List

log = logging.getLogger(__name__)


#* --- Process Status ---
def pid_exists(pid: int) -> bool:
    """A wrapper for psutil.pid_exists for easy testing/mocking if needed."""
    return psutil.pid_exists(pid)

def get_process_from_pid(pid: int) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking if needed."""
    return psutil.Process(pid)

def is_process_alive(pid: int) -> bool:
    """
    Returns True if `pid` names a live process.

    Zombies count as dead: a detached child that already exited stays in the
    process table until its parent reaps it, but it will never serve again.
    """
    if pid <= 0 or not pid_exists(pid):
        return False
    try:
        return get_process_from_pid(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Owned by another user but present in the process table.
        return True

def collect_process_tree(pid: int, include_children: bool) -> List[psutil.Process]:
    """
    Returns the process for `pid` and, optionally, all of its descendants.

    :param pid: The root process id.
    :param include_children: If True, also returns every child recursively.
    :return: A list of psutil.Process objects, empty if the root is gone.
    """
    try:
        root = get_process_from_pid(pid)
    except psutil.NoSuchProcess:
        return []

    procs = [root]
    if include_children:
        try:
            procs.extend(root.children(recursive=True))
        except psutil.NoSuchProcess:
            log.warning(f"Process {pid} no longer exists, skipping children retrieval.")
    return procs

def terminate_processes(processes: List[psutil.Process]) -> None:
    """Sends a graceful termination request (SIGTERM on POSIX) to each process."""
    for proc in processes:
        try:
            log.debug(f"Sending termination request to PID {proc.pid}")
            proc.terminate()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as e:
            log.error(f"Failed to terminate PID {proc.pid}: {e}")

def kill_processes(processes: List[psutil.Process]) -> None:
    """Forcefully kills processes that did not terminate gracefully."""
    for proc in processes:
        try:
            log.warning(f"Killing stubborn process PID {proc.pid}.")
            proc.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as e:
            log.error(f"Failed to kill PID {proc.pid}: {e}")

#* --- Process Creation ---
def get_popen_creation_flags() -> Dict[str, Any]:
    """
    Returns platform-specific keyword arguments that detach a child process.

    On Windows the child gets no console window; elsewhere it is moved into a
    new session so it survives the parent and ignores its terminal signals.
    """
    if sys.platform == "win32":
        return {"creationflags": subprocess.DETACHED_PROCESS | subprocess.CREATE_NO_WINDOW}
    return {"start_new_session": True}

def get_hidden_window_flags() -> Dict[str, Any]:
    """Returns keyword arguments that keep a short-lived helper from flashing a console."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {}

def escape_powershell_string(value: str) -> str:
    """
    Escapes a string for use inside a PowerShell single-quoted literal.

    The only special character in such a literal is the single quote itself,
    which is escaped by doubling it.
    """
    return value.replace("'", "''")
