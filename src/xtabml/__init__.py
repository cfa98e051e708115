"""XtabML cross-tabulation parser.

A streaming parser that turns XtabML survey reports into an immutable
document model of tables, banners, statistics and data cells.

Progressive API Disclosure:
- Level 1: Simple functions - parse(), parse_string(), parse_bytes(), parse_file()
- Level 2: Configured parser - XtabMLParser class
- Level 3: DataFrame export - table_to_dataframe(), document_to_dataframes()
"""

__version__ = "0.1.0"
__author__ = "XtabML Parser Team"

# Level 1 and Level 2 entry points
from .api import (
    XtabMLParser,
    document_to_dataframes,
    parse,
    parse_bytes,
    parse_file,
    parse_string,
    table_to_dataframe,
)

# Configuration and errors for advanced usage
from .shared import (
    CellPolicy,
    LimitsConfig,
    MissingElementError,
    ParserConfig,
    SourceConfig,
    SourceIOError,
    StructuralError,
    TokenError,
    XtabMLError,
)

# Document model
from .tree import (
    DataCell,
    DataRow,
    DataRowSeries,
    Document,
    Edge,
    Group,
    Statistic,
    Table,
)

__all__ = [
    # Version and metadata
    "__author__",
    "__version__",

    # Level 1: Simple parsing functions
    "parse",
    "parse_string",
    "parse_bytes",
    "parse_file",

    # Level 2: Configured parser
    "XtabMLParser",

    # Level 3: DataFrame export
    "table_to_dataframe",
    "document_to_dataframes",

    # Configuration
    "CellPolicy",
    "LimitsConfig",
    "ParserConfig",
    "SourceConfig",

    # Errors
    "XtabMLError",
    "TokenError",
    "StructuralError",
    "MissingElementError",
    "SourceIOError",

    # Document model
    "Document",
    "Table",
    "Edge",
    "Group",
    "Statistic",
    "DataCell",
    "DataRow",
    "DataRowSeries",
]
