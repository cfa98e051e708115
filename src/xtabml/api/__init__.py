"""Public parsing API for XtabML reports."""

from .adapters import document_to_dataframes, table_to_dataframe
from .parser import (
    XtabMLParser,
    parse,
    parse_bytes,
    parse_file,
    parse_string,
)

__all__ = [
    "XtabMLParser",
    "parse",
    "parse_bytes",
    "parse_file",
    "parse_string",
    "document_to_dataframes",
    "table_to_dataframe",
]
