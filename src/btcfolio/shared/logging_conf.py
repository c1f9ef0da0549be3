# src/btcfolio/shared/logging_conf.py
"""
Logging Configuration - Logging Setup and Configuration

This module configures logging once for the whole process: stdout and/or a
rotating log file, one shared line format, and quieter levels for the
libraries that log every HTTP connection or job execution. Refresh failures
and fallbacks are logged by the caches themselves through module loggers.

Files that USE this module:
- btcfolio.app (setup_logging function for logging initialization)

Files that this module USES:
- None (pure configuration module)
"""
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Union
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s] :: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "btcfolio.log"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS: Dict[str, int] = {
    "apscheduler": logging.WARNING,
    "urllib3": logging.WARNING,
}


def _file_handler(
    log_file: Optional[Union[str, Path]],
    log_dir: Optional[Union[str, Path]],
    max_bytes: int,
    backup_count: int,
) -> RotatingFileHandler:
    if log_dir:
        path = Path(log_dir) / LOG_FILE_NAME
    else:
        path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")


def setup_logging(
    level=logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    log_dir: Optional[Union[str, Path]] = None,
    log_stdout: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    quiet_loggers: Optional[Dict[str, int]] = None,
) -> None:
    """
    Configure application-wide logging settings.

    Args:
        level: Root logging level (default: logging.INFO)
        log_file: Optional path to log file (enables file logging)
        log_dir: Optional directory for log files, takes precedence over log_file
            (file is named btcfolio.log)
        log_stdout: Whether to log to stdout (disable under systemd/supervisor)
        max_bytes: Maximum size per log file before rotation (default: 10MB)
        backup_count: Number of backup log files to keep (default: 5)
        quiet_loggers: Logger name -> level overrides (defaults to NOISY_LOGGERS)
    """
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    handlers: List[logging.Handler] = []

    if log_stdout:
        handlers.append(logging.StreamHandler(sys.stdout))

    file_handler: Optional[RotatingFileHandler] = None
    if log_file or log_dir:
        file_handler = _file_handler(log_file, log_dir, max_bytes, backup_count)
        handlers.append(file_handler)

    # Never run silent: fall back to stdout
    if not handlers:
        handlers.append(logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name, name_level in (NOISY_LOGGERS if quiet_loggers is None else quiet_loggers).items():
        logging.getLogger(name).setLevel(name_level)

    logger = logging.getLogger(__name__)
    if file_handler is not None:
        logger.info("Logging configured: file=%s, level=%s", file_handler.baseFilename,
                    logging.getLevelName(level))
    else:
        logger.info("Logging configured: stdout, level=%s", logging.getLevelName(level))
