from enum import Enum
from dataclasses import dataclass
from typing import Optional


class FailureKind(str, Enum):
    """Categories of supervisor failures."""
    VALIDATION = "validation"
    CONTENTION = "contention"
    LAUNCH = "launch"
    HEALTH = "health"


class SupervisorState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class LaunchResult:
    """
    Outcome of a start or launch attempt.

    A successful result always carries a pid; a failed one always carries an
    error message. Use `ok` and `fail` rather than the constructor.
    """
    success: bool
    pid: Optional[int] = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None

    def __post_init__(self) -> None:
        if self.success and self.pid is None:
            raise ValueError("A successful LaunchResult requires a pid")
        if not self.success and not self.error:
            raise ValueError("A failed LaunchResult requires an error message")

    @classmethod
    def ok(cls, pid: int) -> "LaunchResult":
        return cls(success=True, pid=pid)

    @classmethod
    def fail(cls, error: str, kind: FailureKind) -> "LaunchResult":
        return cls(success=False, error=error, kind=kind)


@dataclass(frozen=True)
class WorkerStatus:
    """Snapshot reported by `WorkerSupervisor.status()`."""
    running: bool
    pid: Optional[int] = None
    port: Optional[int] = None
    uptime: Optional[str] = None
    uptime_seconds: Optional[float] = None
    started_at: Optional[str] = None
    version: Optional[str] = None
