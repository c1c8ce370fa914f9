"""
Structured logging for the Tool Catalog Service.

Every entry carries the service name, environment and the correlation id of
the request (or background task) it was emitted from. Output is either a
colored console line or a JSON document, selected by LOG_FORMAT.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from app.core.config import config
from app.middleware.correlation_id import get_correlation_id


class StructuredLogger:
    """Thin structured facade over the standard library root logger"""

    def __init__(self, name: str = None):
        self.service_name = name or config.service_name
        self.environment = config.environment
        self.log_format = config.log_format.lower()
        self._logger = logging.getLogger(self.service_name)
        self._setup_logging()

    def _setup_logging(self):
        """Configure handlers once per process"""
        level = getattr(logging, config.log_level.upper(), logging.INFO)
        self._logger.setLevel(level)
        self._logger.propagate = False

        if self._logger.handlers:
            return

        if config.log_to_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            if self.log_format == "json":
                console_handler.setFormatter(JSONFormatter())
            else:
                console_handler.setFormatter(ConsoleFormatter())
            self._logger.addHandler(console_handler)

        if config.log_to_file:
            log_dir = os.path.dirname(config.log_file_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(config.log_file_path)
            file_handler.setLevel(level)
            file_handler.setFormatter(JSONFormatter())  # Always JSON for files
            self._logger.addHandler(file_handler)

    def _build_log_entry(
        self,
        level: str,
        message: str,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "service": self.service_name,
            "environment": self.environment,
            "message": message,
            "correlationId": correlation_id or get_correlation_id(),
        }
        if metadata:
            entry["metadata"] = metadata
        return entry

    def _log(
        self,
        level: str,
        message: str,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: bool = False,
    ):
        entry = self._build_log_entry(level, message, correlation_id, metadata)
        log_method = getattr(self._logger, level.lower())

        if self.log_format == "json":
            log_method(json.dumps(entry, default=str), exc_info=exc_info)
        else:
            # 'message' would clash with the LogRecord attribute
            extra_data = {k: v for k, v in entry.items() if k != "message"}
            log_method(message, extra=extra_data, exc_info=exc_info)

    def debug(self, message: str, correlation_id: Optional[str] = None,
              metadata: Optional[Dict[str, Any]] = None):
        self._log("DEBUG", message, correlation_id, metadata)

    def info(self, message: str, correlation_id: Optional[str] = None,
             metadata: Optional[Dict[str, Any]] = None):
        self._log("INFO", message, correlation_id, metadata)

    def warning(self, message: str, correlation_id: Optional[str] = None,
                metadata: Optional[Dict[str, Any]] = None):
        self._log("WARNING", message, correlation_id, metadata)

    def error(
        self,
        message: str,
        correlation_id: Optional[str] = None,
        error: Optional[Union[str, Exception]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: bool = False,
    ):
        """Error level logging, optionally attaching the failing exception"""
        if metadata is None:
            metadata = {}

        if error:
            if isinstance(error, Exception):
                metadata["error"] = {
                    "type": type(error).__name__,
                    "message": str(error),
                }
            else:
                metadata["error"] = {"message": str(error)}

        self._log("ERROR", message, correlation_id, metadata, exc_info=exc_info)

    def critical(self, message: str, correlation_id: Optional[str] = None,
                 metadata: Optional[Dict[str, Any]] = None):
        self._log("CRITICAL", message, correlation_id, metadata)


class JSONFormatter(logging.Formatter):
    """Passes through pre-serialized entries, wraps anything else"""

    def format(self, record):
        message = record.getMessage()
        if message.startswith("{"):
            return message
        return json.dumps({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": config.service_name,
            "message": message,
            "correlationId": getattr(record, "correlationId", None),
            "metadata": getattr(record, "metadata", None),
        }, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored console formatter for development"""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']

        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        correlation_id = getattr(record, "correlationId", None) or "no-correlation"

        line = f"{color}[{timestamp}] {record.levelname}{reset} [{correlation_id}] - {record.getMessage()}"

        metadata = getattr(record, "metadata", None)
        if metadata:
            event = metadata.get("event")
            if event:
                line += f" | event={event}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


logger = StructuredLogger()
