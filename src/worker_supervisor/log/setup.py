import sys
import logging
from datetime import date
from pathlib import Path
from typing import Optional


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw subprocess output."""

    def __init__(self) -> None:
        super().__init__('%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s')

    def format(self, record):
        # Output relayed from a child process is already formatted.
        if record.name.startswith('proc.'):
            return record.getMessage()
        return super().format(record)


def setup_logging(console_level: int = logging.INFO, log_dir: Optional[Path] = None) -> None:
    """
    Configures the root logger for the supervisor.
    This sets up a console handler and, when `log_dir` is given, a daily log
    file, clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param log_dir: Directory for `supervisor-<YYYY-MM-DD>.log`; no file logging if None.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # --- File Handler ---
    if log_dir is not None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_dir / f"supervisor-{date.today().isoformat()}.log", encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(MainFormatter())
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.error(f"Failed to initialize file logging handler: {e}. Logging to file will be disabled.")
