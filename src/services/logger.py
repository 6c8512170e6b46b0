"""
Logger Service Module
Console (colored) and rotating file logging for the engine process
"""

import json
import logging
import os
import sys
import time
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import colorlog

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# LogRecord attributes that are not user-supplied `extra` fields
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys() | {"message", "asctime"}
)


class LoggerService:
    """
    Root logger configuration

    Handlers:
    - colored console on stdout
    - app.log, everything at file_level and above, size-rotated
    - errors.log, ERROR and above, size-rotated
    """

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = self._default_config()
        self.config.update(config or {})
        self.handlers: list[logging.Handler] = []

        self.log_dir = Path(self.config["log_dir"]).expanduser()
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            if not os.access(self.log_dir, os.W_OK):
                raise PermissionError(f"Log directory not writable: {self.log_dir}")
        except OSError:
            self.log_dir = Path("./logs")
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self._setup_root_logger()

    @staticmethod
    def _default_config() -> dict[str, Any]:
        return {
            "log_dir": "./logs",
            "console_level": "INFO",
            "file_level": "DEBUG",
            "max_bytes": 5 * 1024 * 1024,
            "backup_count": 3,
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "date_format": "%Y-%m-%d %H:%M:%S",
            "json_logs": False,
        }

    def _setup_root_logger(self):
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)
        root_logger.handlers = []

        self.handlers = [
            self._create_console_handler(),
            self._create_file_handler("app.log"),
            self._create_file_handler("errors.log", level=logging.ERROR),
        ]
        for handler in self.handlers:
            root_logger.addHandler(handler)

        # Flask's request log is noisy at INFO
        logging.getLogger("werkzeug").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)

    def _create_console_handler(self) -> logging.Handler:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(self._level(self.config["console_level"]))
        handler.setFormatter(
            colorlog.ColoredFormatter(
                "%(log_color)s" + self.config["format"],
                datefmt=self.config["date_format"],
                log_colors=LOG_COLORS,
            )
        )
        return handler

    def _create_file_handler(self, filename: str, level: int | None = None) -> logging.Handler:
        try:
            handler: logging.Handler = RotatingFileHandler(
                self.log_dir / filename,
                maxBytes=self.config["max_bytes"],
                backupCount=self.config["backup_count"],
            )
        except OSError:
            # Read-only filesystems (CI, sandboxes)
            handler = logging.StreamHandler(sys.stderr)

        handler.setLevel(level or self._level(self.config["file_level"]))
        if self.config["json_logs"]:
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(
                logging.Formatter(self.config["format"], datefmt=self.config["date_format"])
            )
        return handler

    @staticmethod
    def _level(name: str) -> int:
        return getattr(logging, str(name).upper(), logging.INFO)

    def cleanup(self):
        """Detach and close every handler this service installed"""
        root_logger = logging.getLogger()
        for handler in self.handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self.handlers.clear()


class JsonFormatter(logging.Formatter):
    """One JSON object per line, including any `extra` fields"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class PerformanceLogger:
    """Context manager that logs how long an operation took"""

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.DEBUG):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: float | None = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.perf_counter() - self.start_time
        if exc_type:
            self.logger.error(f"Operation '{self.operation}' failed after {duration:.3f}s: {exc_val}")
        else:
            self.logger.log(self.level, f"Operation '{self.operation}' completed in {duration:.3f}s")


_logger_service: LoggerService | None = None


def setup_logging(overrides: dict | None = None, cfg=None) -> logging.Logger:
    """
    Configure root logging from the LOGGING config section (idempotent)

    Args:
        overrides: Keys replacing the configured values (e.g. console_level)
        cfg: Config to read (defaults to the global one)

    Returns:
        The root logger
    """
    global _logger_service

    if _logger_service is not None:
        return logging.getLogger()

    if cfg is None:
        from config import config as cfg

    logging_section = cfg.section("logging")
    log_config = {
        "log_dir": logging_section["log_dir"],
        "console_level": logging_section["level"],
        "max_bytes": logging_section["max_bytes"],
        "backup_count": logging_section["backup_count"],
        "format": logging_section["format"],
        "date_format": logging_section["date_format"],
        "json_logs": logging_section["json_logs"],
    }
    log_config.update(overrides or {})

    _logger_service = LoggerService(log_config)
    cfg.set_logger(logging.getLogger("config"))
    return logging.getLogger()


def get_logger(name: str) -> logging.Logger:
    if _logger_service is None:
        setup_logging()
    return logging.getLogger(name)


def cleanup_logging():
    global _logger_service

    if _logger_service is not None:
        _logger_service.cleanup()
        _logger_service = None
