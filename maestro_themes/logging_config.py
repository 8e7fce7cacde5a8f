# ======================================================================
# FILE: maestro_themes/logging_config.py
# Console logging for the themes service: text or JSON lines, secret
# redaction on messages and structured extras.
# ======================================================================
from __future__ import annotations

import json
import logging
import re
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Sensitive key substrings for redaction
_SENSITIVE_KEYS = {"api_key", "apikey", "authorization", "auth", "secret", "password", "token"}

RESERVED_LOG_RECORD_KEYS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "stacklevel",
    "taskName",
}

_JSON_SECRET_KV_RE = re.compile(
    r"(\b(?:api[_-]?key|authorization|secret|password|token)\b\s*[:=]\s*[\"']?)([^\"'\s;,}]+)([\"']?)",
    re.IGNORECASE,
)
_BEARER_RE = re.compile(r"(Bearer\s+)([A-Za-z0-9._\-~+/=]+)", re.IGNORECASE)


def _redact(value: Any) -> Any:
    if value is None:
        return value
    if isinstance(value, str):
        if len(value) <= 8:
            return "***"
        return value[:4] + "***" + value[-4:]
    return value


def _maybe_redact_mapping(data: Dict[str, Any]) -> Dict[str, Any]:
    if not data:
        return data
    redacted = {}
    for k, v in data.items():
        if any(sens in k.lower() for sens in _SENSITIVE_KEYS):
            redacted[k] = _redact(v)
        elif isinstance(v, dict):
            redacted[k] = _maybe_redact_mapping(v)
        else:
            redacted[k] = v
    return redacted


def _sanitize_log_message(message: str) -> str:
    if not isinstance(message, str) or not message:
        return message
    msg = _JSON_SECRET_KV_RE.sub(lambda m: m.group(1) + "***REDACTED***" + m.group(3), message)
    return _BEARER_RE.sub(lambda m: m.group(1) + "***REDACTED***", msg)


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in RESERVED_LOG_RECORD_KEYS}


class ProductionJSONFormatter(logging.Formatter):
    """Structured JSON logging for production systems"""

    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": _sanitize_log_message(record.getMessage()),
            "source": f"{record.filename}:{record.lineno} {record.funcName}",
        }
        if record.exc_info:
            base["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "trace": traceback.format_exception(*record.exc_info),
            }
        extras = _record_extras(record)
        if extras:
            base["extra"] = _maybe_redact_mapping(extras)
        return json.dumps(base, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Format:  HH:MM:SS.mmm [LEVEL] logger - msg | package_id=...  (file.py:123 func)"""

    def __init__(self) -> None:
        super().__init__(datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        msg = _sanitize_log_message(record.getMessage())
        extras = []
        for k in ("package_id", "user_id", "state"):
            v = getattr(record, k, None)
            if v is not None:
                extras.append(f"{k}={v}")
        extra_str = f" | {' '.join(extras)}" if extras else ""
        base = f"{ts} [{record.levelname:>5}] {record.name} - {msg}{extra_str}  ({record.filename}:{record.lineno} {record.funcName})"
        if record.exc_info:
            base += "\n" + "".join(traceback.format_exception(*record.exc_info)).rstrip()
        return base


# Global flag to prevent duplicate logging setup
_logging_initialized = False


def setup_logging(level: str = "INFO", *, as_json: bool = False) -> None:
    """Configure the root logger with a single console handler.

    Safe to call more than once; only the first call installs handlers.
    """
    global _logging_initialized
    if _logging_initialized:
        return
    _logging_initialized = True

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(ProductionJSONFormatter() if as_json else ConsoleFormatter())
    root.addHandler(handler)

    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    logging.getLogger(__name__).debug("Logging initialized", extra={"format": "jsonl" if as_json else "text"})


def reset_logging_state() -> None:
    """Reset logging initialization state for testing purposes"""
    global _logging_initialized
    _logging_initialized = False


def log_json(logger: logging.Logger, level: int, payload: Dict[str, Any], *, exc_info: Optional[bool] = None) -> None:
    """Emit an event-style record as a compact JSON message with redacted secrets."""
    logger.log(
        level,
        json.dumps(_maybe_redact_mapping(payload), separators=(",", ":"), default=str),
        exc_info=exc_info,
    )
