import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Optional

import worker_supervisor.settings as default_settings

log = logging.getLogger(__name__)


class SupervisorSettings:
    """
    Merges default settings with JSON overrides from the data directory.

    This class provides a unified, attribute-based access point for all
    supervisor configuration. It follows a clear precedence:
    1. Base values from `settings.py` (which already honour `.env` and the environment).
    2. Overrides from `<data_dir>/settings.json` for keys in `MODIFIABLE_SETTINGS`.
    3. Keyword overrides passed to the constructor.

    Every file path used by the supervisor is derived from `DATA_DIR`, so
    pointing `data_dir` at a scratch directory isolates all shared state.
    """

    def __init__(self, data_dir: Optional[Path] = None, **overrides: Any) -> None:
        """
        :param data_dir: Directory holding the pid, lock, log and overrides files.
        :param overrides: Explicit setting values that take precedence over everything else.
        """
        self._load_defaults()
        if data_dir is not None:
            self._rebase_data_dir(Path(data_dir))
        self._load_overrides()

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting '{key}'.")
            setattr(self, key, self._coerce(key, value))

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                setattr(self, key, getattr(default_settings, key))

    def _rebase_data_dir(self, data_dir: Path) -> None:
        """
        Moves `DATA_DIR` and every default path that lives beneath it.

        Paths configured outside the default data directory are left alone.
        """
        previous = Path(self.DATA_DIR)
        for key in ("WORKER_SCRIPT_PATH", "WRAPPER_SCRIPT_PATH"):
            try:
                relative = Path(getattr(self, key)).relative_to(previous)
            except ValueError:
                continue
            setattr(self, key, data_dir / relative)
        self.DATA_DIR = data_dir

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the overrides JSON file.

        Only keys listed in `MODIFIABLE_SETTINGS` are applied.
        """
        overrides_path = self.OVERRIDES_PATH
        if not overrides_path.exists():
            return

        try:
            with overrides_path.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{overrides_path}': {e}")
            return

        if not isinstance(overrides, dict):
            log.error(f"Overrides file '{overrides_path}' does not contain a JSON object. Ignoring.")
            return

        log.debug(f"Loading configuration overrides from {overrides_path}")
        for key, value in overrides.items():
            if not hasattr(self, key):
                log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue
            try:
                setattr(self, key, self._coerce(key, value))
            except (TypeError, ValueError) as e:
                log.error(f"Could not convert override '{key}'={value!r}: {e}")

    def _coerce(self, key: str, value: Any) -> Any:
        """Coerces a new value to the type of the current default."""
        current_value = getattr(self, key)
        if isinstance(current_value, Path):
            return Path(value)
        if isinstance(current_value, bool):
            return str(value).lower() in ('true', '1', 't', 'yes', 'y')
        if isinstance(current_value, (int, float)) and not isinstance(value, bool):
            return type(current_value)(value)
        return value

    #* --- Derived Paths ---
    @property
    def OVERRIDES_PATH(self) -> Path:
        return self.DATA_DIR / self.OVERRIDES_FILE_NAME

    @property
    def PID_FILE_PATH(self) -> Path:
        return self.DATA_DIR / self.PID_FILE_NAME

    @property
    def LOCK_FILE_PATH(self) -> Path:
        return self.DATA_DIR / self.LOCK_FILE_NAME

    @property
    def LOGS_DIR(self) -> Path:
        return self.DATA_DIR / self.LOGS_DIR_NAME

    def get_log_file_path(self, day: Optional[date] = None) -> Path:
        """Returns the append-mode worker log for the given calendar day (today by default)."""
        day = day or date.today()
        return self.LOGS_DIR / f"worker-{day.isoformat()}.log"

    def get_worker_url(self, port: Optional[int] = None) -> str:
        """Returns the base HTTP address of the worker."""
        return f"http://{self.WORKER_HOST}:{port or self.WORKER_PORT}"
