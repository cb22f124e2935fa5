"""Structured logging configuration with request ids and credential redaction."""

import logging
import re
import sys
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

import orjson
import structlog
from structlog.processors import CallsiteParameter

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
capability_var: ContextVar[str] = ContextVar("capability", default="")


class SecretRedactor:
    """Redact credentials that leak into log values (upstream error bodies, URLs)."""

    API_KEY_PATTERN = re.compile(r"\b(sk-|pk-|hf_|AIza|api[_-]?key[\s=:]+)[\w-]{16,}\b", re.IGNORECASE)
    BEARER_PATTERN = re.compile(r"\bBearer\s+[\w.~+/-]+=*", re.IGNORECASE)
    QUERY_KEY_PATTERN = re.compile(r"([?&]key=)[^&\s]+", re.IGNORECASE)

    @classmethod
    def redact(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        value = cls.API_KEY_PATTERN.sub("[API_KEY_REDACTED]", value)
        value = cls.BEARER_PATTERN.sub("Bearer [REDACTED]", value)
        value = cls.QUERY_KEY_PATTERN.sub(r"\1[REDACTED]", value)
        return value


def add_context_vars(logger, method_name, event_dict):
    """Add context variables to log events."""
    if request_id := request_id_var.get():
        event_dict.setdefault("request_id", request_id)
    if capability := capability_var.get():
        event_dict.setdefault("capability", capability)
    return event_dict


def redact_sensitive_data(logger, method_name, event_dict):
    """Redact credentials from every string value."""
    for key, value in event_dict.items():
        if key in ("timestamp", "level", "logger", "request_id"):
            continue
        if isinstance(value, str):
            event_dict[key] = SecretRedactor.redact(value)
        elif isinstance(value, dict):
            event_dict[key] = {k: SecretRedactor.redact(v) for k, v in value.items()}
    return event_dict


def setup_logging(
    level: str = "INFO",
    format: str = "json",
    redact_secrets: bool = True,
) -> None:
    """Configure structlog over stdlib logging."""
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_context_vars,
    ]

    if redact_secrets:
        processors.append(redact_sensitive_data)

    processors.extend(
        [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    CallsiteParameter.FILENAME,
                    CallsiteParameter.FUNC_NAME,
                    CallsiteParameter.LINENO,
                ]
            ),
            structlog.processors.ExceptionRenderer(),
        ]
    )

    if format == "json":
        processors.append(structlog.processors.JSONRenderer(serializer=lambda *a, **kw: orjson.dumps(*a, **kw).decode()))
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class RequestContext:
    """Context manager binding a request id (and capability) for the duration of a call."""

    def __init__(self, request_id: str | None = None, capability: str | None = None):
        self.request_id = request_id or str(uuid4())
        self.capability = capability
        self._tokens = []

    def __enter__(self):
        self._tokens.append((request_id_var, request_id_var.set(self.request_id)))
        if self.capability:
            self._tokens.append((capability_var, capability_var.set(self.capability)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
        return False
