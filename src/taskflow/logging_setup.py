# src/taskflow/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Minimum level shown on the REPL terminal per logger prefix (longest prefix
# wins). The sweep thread, notifiers and stores run while the user types, so
# only their problems reach the console; the file log keeps everything.
CONSOLE_THRESHOLDS: dict[str, int] = {
    "taskflow": logging.DEBUG,
    "taskflow.tasks.task_scheduler": logging.WARNING,
    "taskflow.tasks.task_store": logging.WARNING,
    "taskflow.users.user_store": logging.WARNING,
    "taskflow.notify": logging.WARNING,
    "nio": logging.ERROR,
    "py.warnings": logging.ERROR,
}
OTHER_THRESHOLD = logging.ERROR


def console_threshold(logger_name: str) -> int:
    best, level = -1, OTHER_THRESHOLD
    for prefix, threshold in CONSOLE_THRESHOLDS.items():
        if logger_name == prefix or logger_name.startswith(prefix + "."):
            if len(prefix) > best:
                best, level = len(prefix), threshold
    return level


class _ReplConsoleFilter(logging.Filter):
    """Drops records below the console threshold of their logger."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= console_threshold(record.name)


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskflow",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Install the console handler (filtered for the REPL) and the full file log
    at <log_dir>/taskflow.log. Replaces any handlers already on the root
    logger. Returns the log file path.
    """
    log_file = Path(log_dir) / "taskflow.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(min(console_level, file_level))
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(formatter)
    console.addFilter(_ReplConsoleFilter())

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)

    root.addHandler(console)
    root.addHandler(file_handler)

    # warnings.warn(...) ends up under 'py.warnings'
    logging.captureWarnings(True)
    # nio logs every sync response at DEBUG
    logging.getLogger("nio").setLevel(logging.INFO)

    return log_file
