"""Configuration classes for XtabML parsing.

This module provides configuration objects for the token source, the
builder's cell placement policy and the resource limits applied to every
parse.
"""

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Any, Dict, List, Optional

# libxml2 refuses documents nested deeper than this unless huge-tree mode is on
LIBXML2_DEFAULT_MAX_DEPTH = 256


class CellPolicy(Enum):
    """Handling of cells that fall outside the declared statistics."""

    STRICT = auto()    # Fail the parse with a StructuralError
    LENIENT = auto()   # Drop the cell and keep going


@dataclass
class LimitsConfig:
    """Resource bounds applied while building a document."""

    max_depth: int = LIBXML2_DEFAULT_MAX_DEPTH
    max_elements: Optional[int] = 5_000_000

    def __post_init__(self) -> None:
        """Validate limits configuration."""
        if self.max_depth <= 0:
            raise ValueError("max_depth must be > 0")
        if self.max_elements is not None and self.max_elements <= 0:
            raise ValueError("max_elements must be > 0 or None")


@dataclass
class SourceConfig:
    """Configuration for the lxml-backed token source."""

    chunk_size: int = 64 * 1024
    huge_tree: bool = False

    def __post_init__(self) -> None:
        """Validate source configuration."""
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigValidationError(ConfigError):
    """Exception raised when configuration fields conflict."""

    def __init__(self, message: str, field_name: Optional[str] = None,
                 suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.field_name = field_name
        self.suggestions = suggestions or []


_COMPONENTS = ("limits", "source")


@dataclass(frozen=True)
class ParserConfig:
    """Complete configuration for one XtabML parser.

    Frozen so a single instance can be shared between parsers running on
    different threads.
    """

    cell_policy: CellPolicy = CellPolicy.STRICT
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate cross-component settings."""
        if not isinstance(self.cell_policy, CellPolicy):
            raise ValueError("cell_policy must be a CellPolicy")
        if (
            self.limits.max_depth > LIBXML2_DEFAULT_MAX_DEPTH
            and not self.source.huge_tree
        ):
            raise ConfigValidationError(
                f"max_depth ({self.limits.max_depth}) exceeds the "
                f"{LIBXML2_DEFAULT_MAX_DEPTH} levels lxml accepts without huge_tree",
                field_name="limits.max_depth",
                suggestions=[
                    "Enable source.huge_tree",
                    f"Reduce limits.max_depth to {LIBXML2_DEFAULT_MAX_DEPTH}",
                ],
            )

    @property
    def is_strict(self) -> bool:
        """Whether out-of-range cells and ragged rows fail the parse."""
        return self.cell_policy is CellPolicy.STRICT

    @classmethod
    def strict(cls) -> "ParserConfig":
        """Create the default configuration that rejects misaligned data."""
        return cls(cell_policy=CellPolicy.STRICT)

    @classmethod
    def lenient(cls) -> "ParserConfig":
        """Create a configuration that drops cells it cannot place."""
        return cls(cell_policy=CellPolicy.LENIENT)

    def override(self, **kwargs: Any) -> "ParserConfig":
        """Create a new configuration with specific overrides.

        Args:
            **kwargs: Top-level fields, or ``component__field`` for nested ones

        Returns:
            New ParserConfig instance with overrides applied

        Example:
            >>> config = ParserConfig().override(
            ...     limits__max_depth=64,
            ...     cell_policy=CellPolicy.LENIENT,
            ... )
        """
        nested: Dict[str, Dict[str, Any]] = {}
        top_level: Dict[str, Any] = {}
        for key, value in kwargs.items():
            if "__" in key:
                component, field_name = key.split("__", 1)
                if component not in _COMPONENTS:
                    raise ConfigValidationError(
                        f"Unknown configuration component: {component}",
                        field_name=key,
                    )
                nested.setdefault(component, {})[field_name] = value
            else:
                top_level[key] = value

        for component, values in nested.items():
            top_level[component] = replace(getattr(self, component), **values)

        return replace(self, **top_level)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a plain dictionary."""
        return {
            "cell_policy": self.cell_policy.name,
            "limits": {
                "max_depth": self.limits.max_depth,
                "max_elements": self.limits.max_elements,
            },
            "source": {
                "chunk_size": self.source.chunk_size,
                "huge_tree": self.source.huge_tree,
            },
            "correlation_id": self.correlation_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParserConfig":
        """Create configuration from a dictionary produced by ``to_dict``."""
        kwargs: Dict[str, Any] = {}
        if "cell_policy" in data:
            policy = data["cell_policy"]
            kwargs["cell_policy"] = (
                CellPolicy[policy] if isinstance(policy, str) else policy
            )
        if "limits" in data:
            kwargs["limits"] = LimitsConfig(**data["limits"])
        if "source" in data:
            kwargs["source"] = SourceConfig(**data["source"])
        if "correlation_id" in data:
            kwargs["correlation_id"] = data["correlation_id"]
        return cls(**kwargs)
