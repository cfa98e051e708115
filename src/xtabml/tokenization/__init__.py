"""Token source for XtabML parsing.

Turns raw markup into a flat stream of structural events (element open,
close, self-closing and text runs) using lxml's incremental parser.
"""

from .events import AttributeValue, EventType, XMLEvent, local_name
from .source import LxmlEventSource, read_chunks, split_chunks

__all__ = [
    "AttributeValue",
    "EventType",
    "XMLEvent",
    "local_name",
    "LxmlEventSource",
    "read_chunks",
    "split_chunks",
]
