import sys
from dataclasses import dataclass


_WINDOWS_TROUBLESHOOTING = (
    "Troubleshooting:\n"
    "1. Check Task Manager for leftover 'python.exe' or 'pythonw.exe' processes\n"
    "2. Verify port {port} is not in use: netstat -ano | findstr {port}\n"
    "3. Check the worker logs in {logs_dir}"
)


@dataclass(frozen=True)
class PlatformProfile:
    """
    Describes how the current platform spawns and stops the worker.

    :param name: Short platform name used in log messages.
    :param use_wrapper_spawn: Spawn through a hidden-window launcher instead of a detached Popen.
    :param kill_process_tree: Stop the worker together with all of its children so its socket is released.
    :param health_timeout_multiplier: Factor applied to the readiness deadline for slow-starting platforms.
    :param troubleshooting: Extra hint appended to startup failure messages, formatted with port and logs_dir.
    """
    name: str
    use_wrapper_spawn: bool = False
    kill_process_tree: bool = False
    health_timeout_multiplier: float = 1.0
    troubleshooting: str = ""

    @classmethod
    def posix(cls) -> "PlatformProfile":
        return cls(name="posix")

    @classmethod
    def windows(cls) -> "PlatformProfile":
        return cls(
            name="windows",
            use_wrapper_spawn=True,
            kill_process_tree=True,
            health_timeout_multiplier=2.0,
            troubleshooting=_WINDOWS_TROUBLESHOOTING,
        )

    @classmethod
    def detect(cls) -> "PlatformProfile":
        """Returns the profile matching the running interpreter's platform."""
        return cls.windows() if sys.platform == "win32" else cls.posix()

    def describe_failure(self, message: str, port: int, logs_dir) -> str:
        """Appends the platform troubleshooting hint, if any, to a failure message."""
        if not self.troubleshooting:
            return message
        return f"{message}\n\n{self.troubleshooting.format(port=port, logs_dir=logs_dir)}"
