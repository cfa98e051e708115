"""Correlation-aware logging for XtabML parsing.

Every record emitted through :func:`get_logger` carries the component that
produced it and the correlation ID of the parse it belongs to, so log output
from concurrent parses can be told apart.
"""

import logging
from typing import Any, MutableMapping, Optional, Tuple


class CorrelationLogger(logging.LoggerAdapter):
    """Logger adapter that merges correlation info into ``extra``."""

    def __init__(
        self,
        name: str,
        correlation_id: Optional[str] = None,
        component: Optional[str] = None
    ) -> None:
        """Initialize correlation logger.

        Args:
            name: Logger name (typically __name__)
            correlation_id: Optional correlation ID for request tracking
            component: Component name, defaults to the last dotted part of name
        """
        super().__init__(
            logging.getLogger(name),
            {
                "component": component or name.rsplit(".", 1)[-1],
                "correlation_id": correlation_id,
            },
        )

    @property
    def correlation_id(self) -> Optional[str]:
        return self.extra["correlation_id"]

    @property
    def component(self) -> str:
        return self.extra["component"]

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        """Merge call-site extra data over the correlation fields."""
        combined = dict(self.extra)
        if kwargs.get("extra"):
            combined.update(kwargs["extra"])
        kwargs["extra"] = combined
        return msg, kwargs


def get_logger(
    name: str,
    correlation_id: Optional[str] = None,
    component: Optional[str] = None
) -> CorrelationLogger:
    """Get a correlation-aware logger instance.

    Args:
        name: Logger name (typically __name__)
        correlation_id: Optional correlation ID for request tracking
        component: Component name for structured logging

    Returns:
        CorrelationLogger instance
    """
    return CorrelationLogger(name, correlation_id, component)
