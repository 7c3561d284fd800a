import json
import logging
from pathlib import Path
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerState:
    """The record of the currently believed-running worker."""
    pid: int
    port: int
    started_at: str
    version: str

    @property
    def started_at_datetime(self) -> datetime:
        started = datetime.fromisoformat(self.started_at)
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        return started

    @classmethod
    def create(cls, pid: int, port: int, version: str) -> "WorkerState":
        """Builds a state record stamped with the current UTC time."""
        return cls(pid=pid, port=port, started_at=datetime.now(timezone.utc).isoformat(), version=version)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class StateStore:
    """
    Persists the WorkerState as the single source of truth on disk.

    Reads never raise: a missing, unreadable or malformed file all read as
    "no known worker".
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def write(self, state: WorkerState) -> None:
        """
        Atomically writes the state file, creating parent directories as needed.

        :param state: The worker state to persist.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        try:
            with temp_path.open("w") as f:
                json.dump(asdict(state), f, indent=2)
            temp_path.replace(self.path)
        finally:
            temp_path.unlink(missing_ok=True)

    def read(self) -> Optional[WorkerState]:
        """
        Reads the state file from disk.

        :return: The WorkerState if the file exists and is valid, else None.
        """
        try:
            with self.path.open("r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            log.warning(f"Could not read state file '{self.path}', treating as absent: {e}")
            return None

        if not isinstance(data, dict):
            log.warning(f"State file '{self.path}' is malformed, treating as absent.")
            return None

        pid, port = data.get("pid"), data.get("port")
        started_at, version = data.get("started_at"), data.get("version")
        if not (_is_int(pid) and _is_int(port) and isinstance(started_at, str) and isinstance(version, str)):
            log.warning(f"State file '{self.path}' has unexpected field types, treating as absent.")
            return None

        state = WorkerState(pid=pid, port=port, started_at=started_at, version=version)
        try:
            state.started_at_datetime
        except ValueError:
            log.warning(f"State file '{self.path}' has an invalid start time, treating as absent.")
            return None
        return state

    def remove(self) -> None:
        """Deletes the state file. An already absent file is not an error."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            log.error(f"Failed to remove state file '{self.path}': {e}")
