"""Logging for the sync service: console and file log, plus run metrics.

Ingestion jobs report two kinds of numbers: per-run values (how long the
last OrderFilled fetch took) and running totals across polling cycles (rows
stored since start). Both end up in log_summary() when a script exits.
"""

from __future__ import annotations

import logging
import sys

from polymarket_sync.utils.config import CONSOLE_LOG_LEVEL, LOG_FILE_NAME, LOGS_DIR

LOG_FILE = LOGS_DIR / LOG_FILE_NAME

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Shared by every PerformanceLogger so a script's log_summary() sees the job metrics
_METRICS: dict[str, float] = {}


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, CONSOLE_LOG_LEVEL, logging.INFO))
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler() -> logging.Handler | None:
    """Debug-level file handler, or None if the logs directory is not writable."""
    try:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
    except OSError:
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


class PerformanceLogger:
    """Module logger that also keeps sync metrics (rows stored, fetch durations)."""

    def __init__(self, name: str) -> None:
        """
        Initialize the logger.

        Args:
            name: Logger name (usually the module's __name__)
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)

        # Loggers are process-wide; only attach handlers once per name
        if not self.logger.handlers:
            self.logger.addHandler(_console_handler())
            file_handler = _file_handler()
            if file_handler is not None:
                self.logger.addHandler(file_handler)
            else:
                self.logger.warning(f"File logging disabled, cannot write to {LOG_FILE}")

        self.metrics = _METRICS

    def debug(self, message: str, *args: object, **kwargs: object) -> None:
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args: object, **kwargs: object) -> None:
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args: object, **kwargs: object) -> None:
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args: object, **kwargs: object) -> None:
        self.logger.error(message, *args, **kwargs)

    def exception(self, message: str, *args: object, **kwargs: object) -> None:
        """Log at error level with the current traceback."""
        self.logger.exception(message, *args, **kwargs)

    def record_metric(self, name: str, value: float) -> None:
        """
        Set a per-run metric, replacing the previous value.

        Args:
            name: Metric name (e.g. "OrderFilled_seconds")
            value: Latest value
        """
        self.metrics[name] = value
        self.debug(f"Metric {name}: {value:.2f}")

    def increment_metric(self, name: str, amount: float = 1) -> float:
        """
        Add to a running total kept across polling cycles.

        Args:
            name: Metric name (e.g. "OrderFilled_stored_total")
            amount: Value to add

        Returns:
            The new total
        """
        total = self.metrics.get(name, 0) + amount
        self.metrics[name] = total
        return total

    def log_progress(
        self,
        current: int,
        total: int,
        item_name: str = "events",
        update_interval: int = 1000,
    ) -> None:
        """
        Log batch progress every update_interval items and on the last one.

        Args:
            current: Items processed so far (1-based)
            total: Items in the batch
            item_name: Label for the items
            update_interval: Log every N items
        """
        interval = max(update_interval, 1)
        if current % interval == 0 or current == total:
            percentage = (current / total * 100) if total > 0 else 0
            self.info(f"Progress: {current}/{total} {item_name} ({percentage:.1f}%)")

    def log_summary(self) -> None:
        """Log every metric, sorted by name. Whole numbers are printed without decimals."""
        if not self.metrics:
            return

        self.info("=== Sync Summary ===")
        for name in sorted(self.metrics):
            value = self.metrics[name]
            shown = f"{value:.0f}" if float(value).is_integer() else f"{value:.2f}"
            self.info(f"{name}: {shown}")
        self.info("====================")


def get_logger(name: str) -> PerformanceLogger:
    """
    Get a PerformanceLogger for a module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        PerformanceLogger instance
    """
    return PerformanceLogger(name)
