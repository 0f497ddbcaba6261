# src/taskflow/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the sweep scheduler in a background thread with its own event loop (optional),
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..logging_setup import setup_logging
from ..tasks.task_scheduler import SchedulerRunner, start_scheduler_in_background
from .console import run_console_loop

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)

    runner: SchedulerRunner | None = None
    if settings.scheduler_enabled:
        close = getattr(state.notifier, "close", None)
        runner = start_scheduler_in_background(state.scheduler, on_shutdown=close)
        if runner is not None:
            state.scheduler_loop = runner.loop
    else:
        logger.info("Scheduler disabled (TASKFLOW_SCHEDULER_ENABLED=false).")

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
        if not settings.console_enabled:
            signal.signal(signal.SIGINT, _handle_signal)
    except (ValueError, OSError):
        logger.debug("Signal handlers not installed.", exc_info=True)

    try:
        if settings.console_enabled:
            run_console_loop(state)
        else:
            logger.info("Console disabled. Running the scheduler only. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        if runner is not None:
            runner.stop()
            runner.join(timeout=10.0)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
