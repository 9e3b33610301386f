"""
structlog configuration.

Library modules only call ``structlog.get_logger()``; applications pick the
renderer and level here. ``set_log(False)`` silences everything.
"""

import logging
import sys
from typing import Any, Dict

import structlog

_state: Dict[str, Any] = {"level": "INFO", "fmt": "json", "enabled": True}
_LEVELS = {logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL}


def _drop_when_disabled(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    if not _state["enabled"]:
        raise structlog.DropEvent
    return event_dict


def _apply() -> None:
    # make_filtering_bound_logger only accepts the standard levels
    min_level = logging.getLevelName(str(_state["level"]).upper())
    if min_level not in _LEVELS:
        min_level = logging.INFO
    if not _state["enabled"]:
        min_level = logging.CRITICAL

    if _state["fmt"] == "console":
        renderer: Any = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            _drop_when_disabled,
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure structlog with a JSON or console renderer."""
    _state["level"] = level
    _state["fmt"] = fmt
    _apply()


def set_log(enabled: bool) -> None:
    """Enable or silence all datamapper logging."""
    _state["enabled"] = enabled
    _apply()
