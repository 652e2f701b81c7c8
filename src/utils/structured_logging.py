"""
Structured Logging Module
JSON log lines for the coordinator, with secrets and session ids masked
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional

REDACTED = "[REDACTED]"


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs log records as single-line JSON objects.

    Context attached with ``extra={"extra_fields": {...}}`` (thread ids,
    applicant ids, sweep counts) is merged into the top-level object so it
    can be queried with jq or a log index. Nested mappings are masked too.

    Args:
        static_fields: Fields added to every line (e.g. the service name).
    """

    # Field names containing one of these never have their value logged.
    # DM session ids ride in component custom ids and let anyone holding
    # one drive that applicant's session; invite links grant server access.
    SENSITIVE_FIELDS = {
        'password', 'token', 'secret', 'authorization', 'webhook',
        'session_id', 'invite',
    }

    def __init__(self, fmt=None, datefmt=None, static_fields: Optional[Mapping[str, Any]] = None):
        super().__init__(fmt, datefmt)
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = dict(self.static_fields)
        log_data.update({
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        })

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, Mapping):
            log_data.update(self._sanitize(extra))

        return json.dumps(log_data, default=str)

    def _sanitize(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        return {str(k): self._sanitize_value(str(k), v) for k, v in fields.items()}

    def _sanitize_value(self, key: str, value: Any) -> Any:
        """
        Mask *value* when *key* names a sensitive field.

        Returns:
            "[REDACTED]", a masked copy of a nested mapping, or the value
        """
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in self.SENSITIVE_FIELDS):
            return REDACTED
        if isinstance(value, Mapping):
            return self._sanitize(value)
        return value
