"""
Logging helpers that keep credentials and card data out of log records.

The issuer client logs every request line at DEBUG. Headers carry the API
key and the wrapped session id, and bodies may carry card data, so both go
through the maskers here before they reach a handler.

Usage:
    from rain_issuing.logging import log_request, log_response

    log_request(logger, "GET", url, headers=headers)
    log_response(logger, response.status_code, duration_ms=elapsed)
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from .constants import LoggingConfig

_MAX_BODY_LOG_LENGTH = 2000


def mask_value(value: str, show_chars: int = 4) -> str:
    """Mask a sensitive value, optionally showing first/last characters."""
    if not value or len(value) <= show_chars * 2:
        return LoggingConfig.MASK_PATTERN

    return f"{value[:show_chars]}...{value[-show_chars:]}"


def is_sensitive_key(key: str) -> bool:
    """Check if a key name indicates sensitive data."""
    key_lower = key.lower()
    return key_lower in LoggingConfig.SENSITIVE_FIELDS or any(
        sensitive in key_lower
        for sensitive in ("secret", "password", "token", "key", "session")
    )


def mask_sensitive_data(
    data: Any,
    additional_fields: Optional[Sequence[str]] = None,
    mask_pattern: str = LoggingConfig.MASK_PATTERN,
    _depth: int = 0,
    _max_depth: int = 10,
) -> Any:
    """Recursively mask sensitive data in a data structure.

    Args:
        data: The data structure to mask (dict, list, or scalar)
        additional_fields: Additional field names to mask
        mask_pattern: Pattern to replace sensitive values with

    Returns:
        Copy of data with sensitive values masked
    """
    if _depth > _max_depth:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if is_sensitive_key(str(key)):
                result[key] = mask_pattern
            elif additional_fields and key in additional_fields:
                result[key] = mask_pattern
            else:
                result[key] = mask_sensitive_data(
                    value,
                    additional_fields,
                    mask_pattern,
                    _depth + 1,
                    _max_depth,
                )
        return result

    if isinstance(data, (list, tuple)):
        return type(data)(
            mask_sensitive_data(item, additional_fields, mask_pattern, _depth + 1, _max_depth)
            for item in data
        )

    return data


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Mask sensitive HTTP headers (Api-Key, SessionId, Authorization)."""
    return {
        key: LoggingConfig.MASK_PATTERN if is_sensitive_key(key) else value
        for key, value in headers.items()
    }


def _truncated_json(body: Any) -> str:
    body_str = json.dumps(mask_sensitive_data(body), default=str)
    if len(body_str) > _MAX_BODY_LOG_LENGTH:
        body_str = body_str[:_MAX_BODY_LOG_LENGTH] + "..."
    return body_str


def log_request(
    logger: logging.Logger,
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    body: Optional[Any] = None,
) -> None:
    """Log an outgoing HTTP request with sensitive values masked."""
    log_data: Dict[str, Any] = {"direction": "request", "method": method, "url": url}
    if headers:
        log_data["headers"] = mask_headers(headers)
    if body is not None:
        log_data["body"] = _truncated_json(body)
    logger.debug(f"HTTP {method} {url}", extra={"data": log_data})


def log_response(
    logger: logging.Logger,
    status_code: int,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None,
) -> None:
    """Log an HTTP response line. Response bodies are never logged."""
    log_data: Dict[str, Any] = {"direction": "response", "status_code": status_code}
    if duration_ms is not None:
        log_data["duration_ms"] = duration_ms
    if error:
        log_data["error"] = error

    level = logging.DEBUG if status_code < 400 else logging.WARNING
    message = f"HTTP {status_code}"
    if duration_ms is not None:
        message += f" ({duration_ms:.0f}ms)"
    logger.log(level, message, extra={"data": log_data})


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "data") and record.data:
            log_data["data"] = record.data
        return json.dumps(log_data, default=str)


def configure_logging(level: int = logging.INFO, json_format: bool = False) -> None:
    """Configure root logging for a host process embedding this package."""
    handler = logging.StreamHandler()
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    logging.basicConfig(level=level, handlers=[handler], force=True)


__all__ = [
    "mask_value",
    "is_sensitive_key",
    "mask_sensitive_data",
    "mask_headers",
    "log_request",
    "log_response",
    "JsonFormatter",
    "configure_logging",
]
