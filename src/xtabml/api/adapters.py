"""pandas integration for parsed XtabML documents.

pandas is an optional dependency; it is imported only when a conversion is
requested, so the core parser works without it.
"""

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from xtabml.shared import get_logger
from xtabml.tree import Document, Table

if TYPE_CHECKING:
    import pandas as pd


def _import_pandas() -> Any:
    try:
        import pandas as pd
    except ImportError as exc:
        raise ImportError(
            "pandas is required for DataFrame conversion; "
            "install it with 'pip install xtabml[pandas]'"
        ) from exc
    return pd


def is_available() -> bool:
    """Check if pandas is available."""
    try:
        import pandas  # noqa: F401
        return True
    except ImportError:
        return False


def table_to_dataframe(
    table: Table,
    statistic_index: int = 0,
    correlation_id: Optional[str] = None
) -> "pd.DataFrame":
    """Convert one statistic of a table to a pandas DataFrame.

    Row and column labels come from the first group of the row and column
    edges when their lengths match the data; otherwise a positional index
    is used. Missing and unset cells become ``None``.

    Args:
        table: Parsed table
        statistic_index: Position of the statistic in declaration order
        correlation_id: Optional correlation ID for request tracking

    Returns:
        DataFrame of cell values (as text), with the statistic type and
        table title stored in ``DataFrame.attrs``

    Raises:
        IndexError: If the table declares no statistic at ``statistic_index``
        ImportError: If pandas is not installed
    """
    pd = _import_pandas()
    start_time = time.time()
    logger = get_logger(__name__, correlation_id, "pandas_adapter")

    grid = table.statistic_data(statistic_index)
    if grid is None:
        raise IndexError(
            f"Table {table.label!r} has no statistic at index {statistic_index} "
            f"({len(table.statistics)} declared)"
        )

    df = pd.DataFrame(grid)

    row_labels = table.row_labels()
    if row_labels and len(row_labels) == len(df.index):
        df.index = row_labels
    column_labels = table.column_labels()
    if column_labels and len(column_labels) == len(df.columns):
        df.columns = column_labels

    df.attrs["title"] = table.title
    df.attrs["name"] = table.name
    df.attrs["statistic"] = table.statistics[statistic_index].type

    logger.debug(
        "Table converted to DataFrame",
        extra={
            "table": table.label,
            "dataframe_shape": df.shape,
            "conversion_time_ms": (time.time() - start_time) * 1000
        }
    )
    return df


def document_to_dataframes(
    document: Document,
    statistic_index: int = 0,
    correlation_id: Optional[str] = None
) -> Dict[str, "pd.DataFrame"]:
    """Convert every table of a document to a DataFrame.

    Tables without a statistic at ``statistic_index`` are skipped.

    Returns:
        Mapping of table label (name, else title) to DataFrame, in document
        order
    """
    frames: Dict[str, "pd.DataFrame"] = {}
    for table in document.tables:
        if table.statistic_data(statistic_index) is None:
            continue
        frames[table.label] = table_to_dataframe(table, statistic_index, correlation_id)
    return frames
