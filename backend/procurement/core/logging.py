from __future__ import annotations

from contextvars import ContextVar, Token
from datetime import datetime, timezone
import json
import logging
import re
from typing import Any


_request_id_ctx_var: ContextVar[str] = ContextVar("request_id", default="-")
_actor_ctx_var: ContextVar[str] = ContextVar("actor_id", default="-")

_JWT_RE = re.compile(r"\b[A-Za-z0-9_-]{20,}\.[A-Za-z0-9_-]{20,}\.[A-Za-z0-9_-]{20,}\b")
_BEARER_RE = re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._-]+")
_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")

LOG_LINE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | req=%(request_id)s actor=%(actor_id)s | %(message)s"


def redact_string(value: str) -> str:
    redacted = _BEARER_RE.sub(r"\1[REDACTED]", value)
    redacted = _JWT_RE.sub("[REDACTED_JWT]", redacted)
    redacted = _EMAIL_RE.sub(r"\1***@\2", redacted)
    return redacted


def redact_value(value: Any, sensitive_keys: set[str]) -> Any:
    if isinstance(value, dict):
        return {
            key: ("[REDACTED]" if str(key).lower() in sensitive_keys else redact_value(sub, sensitive_keys))
            for key, sub in value.items()
        }
    if isinstance(value, list):
        return [redact_value(item, sensitive_keys) for item in value]
    if isinstance(value, tuple):
        return tuple(redact_value(item, sensitive_keys) for item in value)
    if isinstance(value, str):
        return redact_string(value)
    return value


class ContextFilter(logging.Filter):
    """Stamps request id and acting user id on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx_var.get()
        record.actor_id = _actor_ctx_var.get()
        return True


class RedactionFilter(logging.Filter):
    def __init__(self, sensitive_fields: list[str]):
        super().__init__()
        self._sensitive_fields = {f.strip().lower() for f in sensitive_fields if f.strip()}

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_value(record.msg, self._sensitive_fields)
        if record.args:
            record.args = redact_value(record.args, self._sensitive_fields)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "actor_id": getattr(record, "actor_id", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def set_request_id(request_id: str) -> Token[str]:
    return _request_id_ctx_var.set(request_id)


def reset_request_id(token: Token[str]) -> None:
    _request_id_ctx_var.reset(token)


def get_request_id() -> str:
    return _request_id_ctx_var.get()


def set_actor_id(actor_id: str) -> Token[str]:
    return _actor_ctx_var.set(actor_id)


def reset_actor_id(token: Token[str]) -> None:
    _actor_ctx_var.reset(token)


def configure_logging(level: str = "INFO", *, log_format: str = "text", redact_fields: list[str] | None = None) -> None:
    """Configures the logging for the application."""
    root = logging.getLogger()

    # uvicorn reloads and pytest both install handlers before we get here
    if any(getattr(h, "_procurement_configured", False) for h in root.handlers):
        return

    if not root.handlers:
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format=LOG_LINE_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    context_filter = ContextFilter()
    redaction_filter = RedactionFilter(redact_fields or [])
    for handler in root.handlers:
        handler.addFilter(context_filter)
        handler.addFilter(redaction_filter)
        if log_format == "json":
            handler.setFormatter(JsonFormatter())
        handler._procurement_configured = True
