"""Document model and builder for XtabML parsing.

This module turns the structural event stream into an immutable document
model of cross-tabulated tables.

Key Components:
    XtabMLBuilder: State machine that consumes events and builds a Document
    ParserContext: All in-progress state of a single parse
    TableValidator: Row/statistic consistency checks run as each table closes
    Document, Table: Root and per-table entities of the finished model
"""

from .builder import XtabMLBuilder, capture_opaque_body
from .context import ContextStack, Focus, ParserContext
from .model import (
    Axis,
    Control,
    ControlType,
    DataCell,
    DataRow,
    DataRowSeries,
    Document,
    Edge,
    Element,
    Group,
    Language,
    Statistic,
    StatisticType,
    Summary,
    Table,
    TableData,
)
from .validation import TableValidator

__all__ = [
    "XtabMLBuilder",
    "capture_opaque_body",
    "ContextStack",
    "Focus",
    "ParserContext",
    "TableValidator",
    "Axis",
    "Control",
    "ControlType",
    "DataCell",
    "DataRow",
    "DataRowSeries",
    "Document",
    "Edge",
    "Element",
    "Group",
    "Language",
    "Statistic",
    "StatisticType",
    "Summary",
    "Table",
    "TableData",
]
