"""
Structured logging for the unsubscribe pipeline.

Every component logs JSON records under the ``unsubscribe.`` namespace with
persistent and scoped context, timing, and masking of credentials.
"""

import logging
import json
import time
import re
from typing import Dict, Any, Optional
from contextlib import contextmanager
from datetime import datetime, timezone
from collections import defaultdict


class SensitiveDataFilter:
    """Mask credentials in log messages and structured extras."""

    SENSITIVE_KEYS = {'password', 'token', 'api_key', 'key', 'secret', 'authorization'}

    def __init__(self):
        self.sensitive_patterns = [
            (re.compile(r'\bsk-[A-Za-z0-9_\-]{8,}'), 'sk-***'),
            (re.compile(r'bearer\s+[A-Za-z0-9._\-]+', re.IGNORECASE), 'Bearer ***'),
            (re.compile(r'token=([^&\s]+)', re.IGNORECASE), 'token=***'),
            (re.compile(r'password["\']?\s*[:=]\s*["\']?([^"\'\s&]+)', re.IGNORECASE), 'password=***'),
            (re.compile(r'api_key["\']?\s*[:=]\s*["\']?([^"\'\s&]+)', re.IGNORECASE), 'api_key=***'),
            (re.compile(r'secret["\']?\s*[:=]\s*["\']?([^"\'\s&]+)', re.IGNORECASE), 'secret=***'),
        ]

    def filter_message(self, message: str) -> str:
        """Filter sensitive data from a message string."""
        filtered = message
        for pattern, replacement in self.sensitive_patterns:
            filtered = pattern.sub(replacement, filtered)
        return filtered

    def filter_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.filter_message(value)
        if isinstance(value, dict):
            return self.filter_dict(value)
        if isinstance(value, (list, tuple)):
            return [self.filter_value(item) for item in value]
        return value

    def filter_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Filter sensitive data from a dictionary."""
        filtered = {}
        for key, value in data.items():
            if str(key).lower() in self.SENSITIVE_KEYS:
                filtered[key] = '***'
            else:
                filtered[key] = self.filter_value(value)
        return filtered


class UnsubscribeLogger:
    """Structured logger for one pipeline component."""

    def __init__(self, component: str):
        self.component = component
        self.logger = logging.getLogger(f"unsubscribe.{component}")
        self.context: Dict[str, Any] = {}
        self.filter = SensitiveDataFilter()
        self.operation_stats = defaultdict(lambda: {'total': 0, 'success': 0, 'failure': 0})

    def add_context(self, key: str, value: Any) -> None:
        """Add context information to all subsequent log messages."""
        self.context[key] = value

    def _prepare_log_data(self, message: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'component': self.component,
            'message': self.filter.filter_message(message),
            'context': self.filter.filter_dict(self.context.copy())
        }

        if extra:
            log_data['extra'] = self.filter.filter_dict(extra)

        return log_data

    def _emit(self, level: int, message: str, extra: Optional[Dict[str, Any]] = None, **kwargs):
        if not self.logger.isEnabledFor(level):
            return
        log_data = self._prepare_log_data(message, extra)
        self.logger.log(level, json.dumps(log_data, default=str), **kwargs)

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit(logging.DEBUG, message, extra)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit(logging.INFO, message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit(logging.WARNING, message, extra)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit(logging.ERROR, message, extra)

    @contextmanager
    def time_operation(self, operation_name: str):
        """Time the wrapped block and log its duration and status."""
        start_time = time.monotonic()
        self.debug(f"Starting {operation_name}", {"operation": operation_name})

        try:
            yield
        except Exception as e:
            self.error(f"Operation {operation_name} failed", {
                "operation": operation_name,
                "duration_seconds": round(time.monotonic() - start_time, 3),
                "status": "failure",
                "error": str(e)
            })
            raise

        self.info(f"Operation {operation_name} completed", {
            "operation": operation_name,
            "duration_seconds": round(time.monotonic() - start_time, 3),
            "status": "success"
        })

    def log_exception(self, exception: Exception, extra: Optional[Dict[str, Any]] = None):
        """Log exception with its context and traceback."""
        log_data = self._prepare_log_data(f"Exception occurred: {exception}", extra)
        log_data['exception'] = {
            'type': type(exception).__name__,
            'message': self.filter.filter_message(str(exception))
        }

        context = getattr(exception, 'context', None)
        if isinstance(context, dict) and context:
            log_data['exception']['context'] = self.filter.filter_dict(context)

        self.logger.error(json.dumps(log_data, default=str), exc_info=exception)

    @contextmanager
    def scoped_context(self, context: Dict[str, Any]):
        """Add context for the duration of the block."""
        original_context = self.context.copy()
        self.context.update(context)
        try:
            yield
        finally:
            self.context = original_context

    def log_operation_count(self, operation: str, success: bool):
        self.operation_stats[operation]['total'] += 1
        if success:
            self.operation_stats[operation]['success'] += 1
        else:
            self.operation_stats[operation]['failure'] += 1

    def get_operation_stats(self) -> Dict[str, Dict[str, int]]:
        return {name: dict(counts) for name, counts in self.operation_stats.items()}


def configure_unsubscribe_logging(
    level: str = "INFO",
    format: str = "json",
    output: str = "console",
    filename: Optional[str] = None
):
    """Configure handlers for the ``unsubscribe`` logger tree."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger("unsubscribe")
    logger.setLevel(log_level)
    logger.handlers.clear()

    if format == "json":
        formatter = logging.Formatter('%(message)s')
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    if output in ["console", "both"]:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if output in ["file", "both"] and filename:
        file_handler = logging.FileHandler(filename)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
