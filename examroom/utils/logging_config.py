"""
Logging setup for the exam room service

Console output plus, optionally, a daily rotating log file and a separate
error log under ``LOG_DIR``.
"""
import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import List

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
MAX_ERROR_LOG_BYTES = 5 * 1024 * 1024


def _rotating_handler(path: Path, max_bytes: int, backups: int, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8"
    )
    handler.setLevel(level)
    return handler


def setup_logging(
    service_name: str = "exam-room",
    level: str = "INFO",
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_dir: str = "logs"
) -> logging.Logger:
    """
    Configure the root logger.

    Existing root handlers are replaced, so calling this twice does not
    duplicate output.

    Args:
        service_name: Used as the logger name and the log file prefix
        level: Root log level name (DEBUG, INFO, WARNING, ERROR)
        log_to_file: Add the rotating service and error logs
        log_to_console: Add a stdout handler
        log_dir: Directory for the log files (created if missing)

    Returns:
        The service logger
    """
    handlers: List[logging.Handler] = []

    if log_to_console:
        handlers.append(logging.StreamHandler(sys.stdout))

    log_file = None
    if log_to_file:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        prefix = service_name.lower().replace(" ", "-")
        log_file = directory / f"{prefix}_{datetime.now():%Y-%m-%d}.log"

        handlers.append(_rotating_handler(log_file, MAX_LOG_BYTES, 5, logging.DEBUG))
        handlers.append(_rotating_handler(directory / f"{prefix}_errors.log", MAX_ERROR_LOG_BYTES, 3, logging.ERROR))

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    root = logging.getLogger()
    root.handlers = []
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    service_logger = logging.getLogger(service_name)
    service_logger.info(f"Logging configured: level={level} file={log_file or '-'}")
    return service_logger
