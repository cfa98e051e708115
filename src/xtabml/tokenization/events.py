"""Structural XML events consumed by the XtabML builder."""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Mapping, Optional, Union

AttributeValue = Union[str, bytes]


class EventType(Enum):
    """Kinds of structural events produced by a token source."""

    START = auto()   # Element opened: <name ...>
    END = auto()     # Element closed: </name>
    EMPTY = auto()   # Self-closing element: <name .../>
    TEXT = auto()    # Character data between markup


@dataclass(frozen=True)
class XMLEvent:
    """One structural event with decoded name, attributes and text."""

    type: EventType
    name: str = ""
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    text: str = ""

    def __post_init__(self) -> None:
        """Validate event fields."""
        if self.type is not EventType.TEXT and not self.name:
            raise ValueError("Element events require a name")

    @property
    def opens(self) -> bool:
        """Whether this event opens an element (including self-closing ones)."""
        return self.type in (EventType.START, EventType.EMPTY)

    @classmethod
    def start(
        cls, name: str, attributes: Optional[Mapping[str, AttributeValue]] = None
    ) -> "XMLEvent":
        return cls(EventType.START, name, dict(attributes or {}))

    @classmethod
    def end(cls, name: str) -> "XMLEvent":
        return cls(EventType.END, name)

    @classmethod
    def empty(
        cls, name: str, attributes: Optional[Mapping[str, AttributeValue]] = None
    ) -> "XMLEvent":
        return cls(EventType.EMPTY, name, dict(attributes or {}))

    @classmethod
    def characters(cls, text: str) -> "XMLEvent":
        return cls(EventType.TEXT, text=text)


def local_name(qualified: str) -> str:
    """Strip a Clark-notation namespace (``{uri}name``) or a ``prefix:``."""
    if qualified.startswith("{"):
        qualified = qualified.rsplit("}", 1)[-1]
    if ":" in qualified:
        qualified = qualified.split(":", 1)[1]
    return qualified
