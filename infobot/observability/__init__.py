"""Observability: correlation IDs, structured logging, Prometheus metrics.

Usage:
    from infobot.observability import configure_logging, get_logger

    configure_logging(level="INFO")
    logger = get_logger("scheduler")
"""

from infobot.observability.context import (
    clear_correlation_id,
    correlation_id_context,
    get_correlation_id,
    set_correlation_id,
)
from infobot.observability.logging import (
    add_correlation_id_processor,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    redact_secrets_processor,
)
from infobot.observability.metrics import get_metrics_content_type, get_metrics_text

__all__ = [
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "correlation_id_context",
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "add_correlation_id_processor",
    "redact_secrets_processor",
    "get_metrics_text",
    "get_metrics_content_type",
]
