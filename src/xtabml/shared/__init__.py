"""Shared utilities for XtabML parsing.

This module provides the configuration objects, exception hierarchy and
logging helpers used across the token source, builder and API layers.
"""

from .config import (
    CellPolicy,
    ConfigError,
    ConfigValidationError,
    LimitsConfig,
    ParserConfig,
    SourceConfig,
)
from .errors import (
    MissingElementError,
    SourceIOError,
    StructuralError,
    TokenError,
    XtabMLError,
)
from .logging import (
    CorrelationLogger,
    get_logger,
)

__all__ = [
    "CellPolicy",
    "ConfigError",
    "ConfigValidationError",
    "LimitsConfig",
    "ParserConfig",
    "SourceConfig",
    "MissingElementError",
    "SourceIOError",
    "StructuralError",
    "TokenError",
    "XtabMLError",
    "CorrelationLogger",
    "get_logger",
]
