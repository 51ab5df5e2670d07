"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from graphauth.logging.context import get_log_context

REDACTED = "[REDACTED]"

# Pattern to match sensitive query parameters and form fields
SENSITIVE_PARAMS_PATTERN = re.compile(
    r"([?&#\s]|^)(code|access_token|refresh_token|client_secret|id_token|token|secret|password)"
    r"=[^&\s]*",
    re.IGNORECASE,
)

# Bearer credentials embedded in free text (e.g. a logged header)
BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)


def redact(text: str) -> str:
    """Strip credential values from URLs, form bodies and header text."""
    text = SENSITIVE_PARAMS_PATTERN.sub(rf"\1\2={REDACTED}", text)
    return BEARER_PATTERN.sub(rf"\1{REDACTED}", text)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Credential values are redacted from the message and from every field.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Session
        "client_id",
        "flow",
        "operation",
        "state",
        "store_scope",
        "has_token",
        "has_refresh_token",
        "refresh_rotated",
        "expires_at",
        # HTTP
        "http_status",
        "http_url",
        # Errors
        "error",
        "error_code",
        "error_type",
    ]

    # Fields whose values must never be written
    SECRET_FIELDS = {"access_token", "refresh_token", "client_secret", "code", "password"}

    # Type mapping for numeric fields
    NUMERIC_FIELDS = {
        "http_status": int,
    }

    # Fields that contain URLs and should be sanitized
    URL_FIELDS = ["http_url", "url", "request_url"]

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if key in self.SECRET_FIELDS:
            return REDACTED
        if isinstance(value, str) and (
            key in self.URL_FIELDS or "=" in value or "Bearer" in value
        ):
            return redact(value)
        return value

    def _ensure_type(self, field: str, value: Any) -> Any:
        if field not in self.NUMERIC_FIELDS or value is None:
            return value
        try:
            return self.NUMERIC_FIELDS[field](value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _base_log_entry(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }

    @staticmethod
    def _inject_context(log_entry: dict[str, Any], log_context: dict[str, str]) -> None:
        for field, value in log_context.items():
            if value:
                log_entry[field] = value

    @staticmethod
    def _should_include_source_location(record: logging.LogRecord) -> bool:
        return record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL)

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = self._sanitize_value(field, self._ensure_type(field, value))
        for field in self.SECRET_FIELDS:
            if getattr(record, field, None) is not None:
                log_entry[field] = REDACTED

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": redact(str(exc_value)) if exc_value else None,
            "stacktrace": redact(self.formatException(record.exc_info)),
        }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as one JSON line."""
        log_entry = self._base_log_entry(record)

        self._inject_context(log_entry, get_log_context())

        # Add source location for DEBUG/ERROR
        if self._should_include_source_location(record):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        # Extras override context so an explicit client_id wins
        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    # ANSI color codes
    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        if not self._use_colors:
            return level_name

        color = self.COLORS.get(record.levelno, "")
        if not color:
            return level_name

        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_prefix(level_name: str, log_context: dict[str, str]) -> str:
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            level_name,
        ]

        if log_context["flow"]:
            parts.append(f"[{log_context['flow']}]")
        if log_context["operation"]:
            parts.append(f"[{log_context['operation']}]")

        return " - ".join(parts)

    @staticmethod
    def _build_tags(record: logging.LogRecord, log_context: dict[str, str]) -> list[str]:
        client_id = getattr(record, "client_id", None) or log_context.get("client_id")
        http_status = getattr(record, "http_status", None)

        tags = []
        if client_id:
            tags.append(f"[client:{client_id[:8]}]")
        if http_status:
            tags.append(f"[http:{http_status}]")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output with optional color coding."""
        log_context = get_log_context()

        level_name = self._format_level_name(record)
        prefix = self._build_prefix(level_name, log_context)
        tags = self._build_tags(record, log_context)
        message = redact(record.getMessage())

        if record.exc_info:
            message = f"{message}\n{redact(self.formatException(record.exc_info))}"

        if tags:
            return f"{prefix} - {' '.join(tags)} {message}"

        return f"{prefix} - {message}"
