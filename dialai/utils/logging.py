"""Logging configuration and utilities."""

import sys
import logging
import logging.handlers
import structlog
from pathlib import Path
from datetime import datetime, timezone
import json
from typing import Optional, Union


_RESERVED_RECORD_ATTRS = frozenset([
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "getMessage", "message", "taskName",
])


def setup_logging(
    debug: bool = False,
    log_file: bool = True,
    log_level: str = "INFO",
    log_format: str = "json",
    log_dir: Optional[Union[str, Path]] = None,
    file_rotation_mb: int = 10,
    file_backup_count: int = 7,
) -> Optional[Path]:
    """
    Configure structured logging for the application.

    Args:
        debug: Enable debug logging (overrides log_level)
        log_file: Whether to log to file in addition to console
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, dev)
        log_dir: Directory for log files
        file_rotation_mb: File rotation size in MB
        file_backup_count: Number of backup files to keep

    Returns:
        Path of the log file, or None when file logging is disabled.
    """
    if debug:
        log_level = "DEBUG"
    level = getattr(logging, log_level.upper(), logging.INFO)

    log_path = None
    if log_file:
        log_dir = Path(log_dir or "./logs")
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        log_path = log_dir / f"dialai_{timestamp}.log"

    use_console_renderer = log_format == "dev" or (
        sys.stderr.isatty() and log_format != "json"
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if use_console_renderer:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    if use_console_renderer:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    else:
        console_handler.setFormatter(JsonFormatter())
    root_logger.addHandler(console_handler)

    if log_path is not None:
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=file_rotation_mb * 1024 * 1024,
            backupCount=file_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        # File logs are always JSON
        file_handler.setFormatter(JsonFormatter())
        root_logger.addHandler(file_handler)

    root_logger.setLevel(level)

    if log_path is not None:
        structlog.get_logger().info(
            "Logging configured",
            log_file=str(log_path),
            log_level=log_level,
            log_format=log_format,
        )

    return log_path


def open_call_log(
    call_id: str,
    log_dir: Optional[Union[str, Path]] = None,
    log_level: str = "INFO",
) -> logging.Handler:
    """
    Copy log records to a JSON file named after ``call_id``.

    Pass the returned handler to close_call_log once the call has ended.
    """
    log_dir = Path(log_dir or "./logs")
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    handler = logging.FileHandler(log_dir / f"call_{call_id}_{timestamp}.log", encoding="utf-8")
    handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    handler.setFormatter(JsonFormatter())
    logging.getLogger().addHandler(handler)
    return handler


def close_call_log(handler: logging.Handler) -> None:
    logging.getLogger().removeHandler(handler)
    handler.close()


def silence_logging() -> None:
    """Drop everything below CRITICAL, used for machine-readable CLI output."""
    logging.getLogger().setLevel(logging.CRITICAL)
    structlog.configure(
        processors=[structlog.stdlib.filter_by_level, structlog.processors.JSONRenderer()],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON."""

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_dict["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra_attrs = {
                key: value
                for key, value in record.__dict__.items()
                if key not in log_dict
                and not key.startswith("_")
                and key not in _RESERVED_RECORD_ATTRS
            }
            if extra_attrs:
                log_dict["attributes"] = extra_attrs

        return json.dumps(log_dict, ensure_ascii=False, separators=(",", ":"), default=str)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def cleanup_old_logs(
    log_dir: Optional[Union[str, Path]] = None, keep_days: int = 7
) -> int:
    """Remove log files older than ``keep_days``. Returns the number removed."""
    log_dir = Path(log_dir or "./logs")
    if not log_dir.exists():
        return 0

    logger = get_logger("logging.cleanup")
    cutoff_time = datetime.now().timestamp() - (keep_days * 24 * 60 * 60)
    removed = 0

    for log_file in log_dir.glob("*.log*"):
        try:
            modified = log_file.stat().st_mtime
            if modified < cutoff_time:
                log_file.unlink()
                removed += 1
                logger.info(
                    "Removed old log file",
                    file=str(log_file),
                    age_days=(datetime.now().timestamp() - modified) / (24 * 60 * 60),
                )
        except OSError as e:
            logger.warning("Failed to remove old log file", file=str(log_file), error=str(e))

    return removed
