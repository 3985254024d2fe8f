"""
Audit Logger module for the ledger resolver.

Provides structured logging with JSON and human-readable text output, a
minimum severity filter, and masking of credentials before anything is
written.
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, TextIO

from .enums import LogLevel


_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}


@dataclass
class LogEntry:
    """Represents a single log entry with all metadata."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)


class AuditLogger:
    """
    Structured logger shared by all components.

    Entries below the configured level are dropped. Values under keys that
    look like credentials (passwords, tokens, auth headers) are masked
    recursively.
    """

    SENSITIVE_KEYS = frozenset({
        'password', 'secret', 'token', 'auth', 'authorization',
        'credential', 'api_key', 'private_key', 'hmac_secret',
        'rpc_password',
    })

    MASK_VALUE = "***MASKED***"

    def __init__(
        self,
        output_format: str = "text",
        level: str = "info",
        output_stream: Optional[TextIO] = None,
    ):
        """
        Initialize the logger.

        Args:
            output_format: 'json', 'text', or 'both'
            level: Minimum level name ('debug', 'info', 'warn', 'error')
            output_stream: Destination stream (defaults to sys.stderr)
        """
        if output_format not in ("json", "text", "both"):
            raise ValueError(f"Invalid output_format: {output_format}")
        try:
            self._min_level = LogLevel(level.lower())
        except ValueError as e:
            raise ValueError(f"Invalid log level: {level}") from e

        self._output_format = output_format
        self._output_stream = output_stream or sys.stderr
        self._entries: list[LogEntry] = []

    @property
    def output_format(self) -> str:
        return self._output_format

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    @property
    def entries(self) -> list[LogEntry]:
        """All entries written so far."""
        return self._entries.copy()

    def is_enabled(self, level: LogLevel) -> bool:
        return _LEVEL_ORDER[level] >= _LEVEL_ORDER[self._min_level]

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Write an entry if its level passes the filter.

        Returns:
            The written LogEntry, or None if it was filtered out
        """
        if not self.is_enabled(level):
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=self.mask_sensitive_data(data or {}),
        )
        self._entries.append(entry)

        if self._output_format in ("json", "both"):
            self._output_stream.write(self.format_json(entry) + "\n")
        if self._output_format in ("text", "both"):
            self._output_stream.write(self.format_text(entry) + "\n")
        self._output_stream.flush()

        return entry

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[Exception] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """Log an error with the exception's type, message and code."""
        data = additional_data.copy() if additional_data else {}
        if error is not None:
            data["error_message"] = str(error)
            data["error_type"] = type(error).__name__
            code = getattr(error, "code", None)
            if code is not None:
                data["error_code"] = code
        return self.log(LogLevel.ERROR, component, message, data)

    def mask_sensitive_data(self, data: dict) -> dict:
        """Return a copy of ``data`` with sensitive values masked."""
        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(sensitive in key_lower for sensitive in self.SENSITIVE_KEYS):
                masked[key] = self.MASK_VALUE
            elif isinstance(value, dict):
                masked[key] = self.mask_sensitive_data(value)
            elif isinstance(value, list):
                masked[key] = [
                    self.mask_sensitive_data(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                masked[key] = value
        return masked

    def format_json(self, entry: LogEntry) -> str:
        return json.dumps({
            "timestamp": entry.timestamp,
            "level": entry.level.value,
            "component": entry.component,
            "message": entry.message,
            "data": entry.data,
        }, ensure_ascii=False, default=str)

    def format_text(self, entry: LogEntry) -> str:
        # [TIMESTAMP] LEVEL [COMPONENT] MESSAGE {data}
        parts = [
            f"[{entry.timestamp}]",
            entry.level.value.upper(),
            f"[{entry.component}]",
            entry.message,
        ]
        if entry.data:
            parts.append(json.dumps(entry.data, ensure_ascii=False, default=str))
        return " ".join(parts)

    def clear_entries(self) -> None:
        self._entries.clear()


class ComponentLogging:
    """Mixin giving a component null-safe logging helpers."""

    COMPONENT = "LedgerResolver"
    _logger: Optional[AuditLogger] = None

    def _log_debug(self, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(LogLevel.DEBUG, self.COMPONENT, message, data)

    def _log_info(self, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, self.COMPONENT, message, data)

    def _log_warn(self, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(LogLevel.WARN, self.COMPONENT, message, data)

    def _log_error(
        self,
        message: str,
        error: Optional[Exception] = None,
        data: Optional[dict] = None,
    ) -> None:
        if self._logger:
            self._logger.log_error(self.COMPONENT, message, error, data)
