"""
Centralized logging configuration for OrderBridge.

This module provides thread-aware logging with automatic thread context
in all log messages. Request handlers and the registration synchronizer
run on different threads, so every line names the thread that wrote it.

Features:
    - Automatic thread name in all log messages
    - Console output (always enabled)
    - Rotating file logs (optional, for production)
    - Separate error log for ERROR/CRITICAL messages
    - Helper functions for getting loggers with consistent naming

Log Format:
    2026-03-02 10:15:30 [INFO    ] [MainThread] order_bridge.app - Starting application
    2026-03-02 10:15:31 [INFO    ] [Synchronizer] order_bridge.services.sync_service - Iteration complete
    2026-03-02 10:15:32 [WARNING ] [Thread-7] order_bridge.order.60001 - Start rejected by remote

Usage:
    # At application startup
    from logging_config import setup_logging, get_logger

    setup_logging(log_level=logging.INFO, enable_file_logging=True)

    # In modules
    logger = get_logger(__name__)
    logger.info("This message includes thread context automatically")

    # For a single order's operation
    order_logger = get_order_logger(60001)
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


ROOT_LOGGER_NAME = "order_bridge"


# =============================================================================
# THREAD CONTEXT FILTER
# =============================================================================

class ThreadContextFilter(logging.Filter):
    """
    Logging filter that adds thread context to all log records.

    Adds ``thread_name`` and ``thread_id`` to each record so the format
    string can show which thread produced the message.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        current_thread = threading.current_thread()
        record.thread_name = current_thread.name
        record.thread_id = threading.get_ident()

        # Never drop records, only decorate them
        return True


# =============================================================================
# LOGGING SETUP
# =============================================================================

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] [%(thread_name)s] %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Each log file rotates at 10 MB, keeping 5 backups
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


def _attach(logger: logging.Logger, handler: logging.Handler, level: int,
            formatter: logging.Formatter, thread_filter: logging.Filter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(thread_filter)
    logger.addHandler(handler)


def _rotating(path: Path) -> RotatingFileHandler:
    return RotatingFileHandler(
        filename=path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )


def setup_logging(
    app_name: str = ROOT_LOGGER_NAME,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure the ``order_bridge`` logger tree.

    Handlers:
        console            always, at ``log_level``
        <app_name>.log     rotating, at ``log_level`` (file logging only)
        <app_name>_error.log  rotating, ERROR and above (file logging only)

    Calling it again replaces the handlers, so every app built in a test
    session logs exactly once per record.

    Args:
        app_name: Name of the root logger and prefix of the log files
        log_level: Minimum log level (default: INFO)
        log_dir: Directory for log files (default: ./logs next to this file)
        enable_file_logging: Whether to write log files (default: True)

    Returns:
        The configured root logger
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    thread_filter = ThreadContextFilter()

    _attach(logger, logging.StreamHandler(sys.stdout), log_level, formatter, thread_filter)

    if enable_file_logging:
        log_dir = Path(log_dir) if log_dir else Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        app_log_file = log_dir / f"{app_name}.log"
        _attach(logger, _rotating(app_log_file), log_level, formatter, thread_filter)
        _attach(logger, _rotating(log_dir / f"{app_name}_error.log"), logging.ERROR,
                formatter, thread_filter)

        logger.info(f"File logging enabled: {app_log_file}")

    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


# =============================================================================
# LOGGER FACTORY FUNCTIONS
# =============================================================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger under the application namespace.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance, e.g. "order_bridge.services.lifecycle_service"
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)


def get_order_logger(production_order: int) -> logging.Logger:
    """
    Get a logger for operations on a single production order.

    Makes it easy to grep every line written about one order, across
    request threads and the synchronizer.

    Args:
        production_order: Order number

    Returns:
        Logger named "order_bridge.order.<number>"
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.order.{production_order}")


def set_thread_name(name: str) -> None:
    """
    Set the name of the current thread.

    This name appears in log messages in the [thread_name] field.

    Args:
        name: Thread name to display in logs
    """
    threading.current_thread().name = name
