"""Structured logging for infobot.

One structlog configuration for the whole process. Every entry carries the
correlation id of the job that produced it, and secrets that tend to leak
through error strings (Discord webhook tokens, YouTube API keys in query
strings) are masked before rendering.

Usage:
    from infobot.observability.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_output=True)

    logger = get_logger("scheduler")
    logger.info("check_cycle_started", sources=3)

    # {"event": "check_cycle_started", "sources": 3,
    #  "correlation_id": "check_cycle-20250101-120000", "component": "scheduler", ...}
"""

import logging
import re
import sys
from typing import Any, Optional

import structlog
from structlog.typing import EventDict, WrappedLogger

from infobot.observability.context import get_correlation_id

REDACTED = "***"

_SECRET_PATTERNS = (
    # https://discord.com/api/webhooks/<id>/<token>
    (re.compile(r"(/api/webhooks/\d+/)[\w-]+"), r"\1" + REDACTED),
    # ...?key=AIza...&part=snippet
    (re.compile(r"([?&](?:key|api_key|access_token)=)[^&\s'\"]+"), r"\1" + REDACTED),
)


def redact(text: str) -> str:
    """Mask webhook tokens and API keys inside a string."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def add_correlation_id_processor(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds correlation_id to log entries.

    If no correlation ID is set, uses "none".
    """
    corr_id = get_correlation_id()
    event_dict["correlation_id"] = corr_id if corr_id else "none"
    return event_dict


def redact_secrets_processor(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor masking secrets in string values."""
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = redact(value)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    add_timestamp: bool = True,
) -> None:
    """Configure structlog for the process.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines when True, colored console output otherwise
        add_timestamp: Add a UTC ISO timestamp to each entry
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_correlation_id_processor,
        structlog.processors.add_log_level,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets_processor,
    ]

    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    processors.append(
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: Optional[str] = None, **initial_context: Any) -> Any:
    """Logger bound to a component name and any extra context."""
    logger = structlog.get_logger()
    if component:
        initial_context = {"component": component, **initial_context}
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def bind_context(**context: Any) -> None:
    """Bind context to every entry logged in the current task."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
