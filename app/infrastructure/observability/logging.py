"""
structlog configuration for the slot queue bot.

One JSON object per line in production; a readable console layout when
LOG_JSON is off. Chat text fields are clipped so a spammed message can't
blow up a log line.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

MAX_TEXT_FIELD = 300
CLIPPED_FIELDS = ("text", "reply", "message")


def _clip_chat_text(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in CLIPPED_FIELDS:
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > MAX_TEXT_FIELD:
            event_dict[key] = value[:MAX_TEXT_FIELD] + "..."
    return event_dict


def setup_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _clip_chat_text,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    for noisy in ("httpx", "httpcore", "websockets", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_health_check(service: str, healthy: bool, latency_ms: float, error: str = None):
    """One line per dependency probed by /readyz."""
    logger = get_logger("health")
    fields = {"service": service, "healthy": healthy, "latency_ms": latency_ms}
    if error:
        fields["error"] = error

    if healthy:
        logger.debug("Health check passed", **fields)
    else:
        logger.error("Health check failed", **fields)


def log_request(method: str, path: str, status_code: int, duration_ms: float):
    logger = get_logger("http")
    level = "warning" if status_code >= 400 else "info"
    getattr(logger, level)(
        "HTTP request",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        # /events responses are long-lived streams
        streaming=path == "/events",
    )
