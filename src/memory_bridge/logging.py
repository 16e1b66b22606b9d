"""Structured logging for Memory Bridge.

The plugin logs into its host runtime's stream, so every event is stamped
with the plugin id and the capture source it tags batches with.
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog
from structlog.types import Processor

from memory_bridge.config import Settings, get_settings
from memory_bridge.constants import PLUGIN_ID

# HTTP client chatter would otherwise log every memory service call
_QUIET_LOGGERS = ("httpx", "httpcore")


def plugin_context(source: str) -> Processor:
    """Processor adding ``plugin`` and ``source`` unless the call site set them."""

    def add_plugin_context(
        logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        event_dict.setdefault("plugin", PLUGIN_ID)
        event_dict.setdefault("source", source)
        return event_dict

    return add_plugin_context


def _renderer(settings: Settings) -> Processor:
    if settings.is_development:
        return structlog.dev.ConsoleRenderer(colors=True)
    return structlog.processors.JSONRenderer()


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog for the plugin and quieten third-party loggers."""
    settings = settings or get_settings()
    log_level = logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            plugin_context(settings.capture_source),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            _renderer(settings),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
