"""Immutable document model for parsed XtabML cross-tabulations.

Every entity is a frozen dataclass whose child collections are tuples; the
builder assembles them bottom-up and nothing is modified once a parse
returns.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Axis(Enum):
    """Axis discriminator of a table edge."""

    ROW = "r"
    COLUMN = "c"

    @classmethod
    def parse(cls, raw: str) -> Optional["Axis"]:
        """Map an ``axis`` attribute value to an Axis, or None if unknown."""
        return _AXIS_ALIASES.get(raw.strip().lower())


_AXIS_ALIASES = {
    "r": Axis.ROW,
    "row": Axis.ROW,
    "c": Axis.COLUMN,
    "col": Axis.COLUMN,
    "column": Axis.COLUMN,
}


@dataclass(frozen=True)
class Language:
    """Language available for alternative texts."""

    lang: str
    base: Optional[str] = None
    description: str = ""


@dataclass(frozen=True)
class ControlType:
    """Declared kind of control, such as ``project`` or ``base``."""

    name: str
    status: Optional[str] = None
    text: str = ""


@dataclass(frozen=True)
class StatisticType:
    """Declared kind of statistic, such as ``Percent`` or ``Count``."""

    name: str
    text: str = ""


@dataclass(frozen=True)
class Control:
    """Free-form metadata attached to the document or a table."""

    type: str
    text: str = ""


@dataclass(frozen=True)
class Statistic:
    """A measure reported for every cell of a table."""

    type: str


@dataclass(frozen=True)
class Element:
    """A labeled row or column header entry."""

    text: str
    index: Optional[int] = None


@dataclass(frozen=True)
class Summary:
    """A subtotal label such as ``NET``."""

    text: str


@dataclass(frozen=True)
class Group:
    """Elements and summaries within an edge."""

    elements: Tuple[Element, ...] = ()
    summaries: Tuple[Summary, ...] = ()

    @property
    def labels(self) -> List[str]:
        return [element.text for element in self.elements]


@dataclass(frozen=True)
class Edge:
    """Row or column banner of a table.

    ``axis`` keeps the raw attribute text; :attr:`kind` resolves it.
    """

    axis: str
    groups: Tuple[Group, ...] = ()

    @property
    def kind(self) -> Optional[Axis]:
        return Axis.parse(self.axis)


@dataclass(frozen=True)
class DataCell:
    """One value in the data matrix.

    A cell holds a value, is explicitly missing, or is unset (no text was
    observed). Consumers should treat unset cells as missing.
    """

    value: Optional[str] = None
    is_missing: bool = False

    def __post_init__(self) -> None:
        """Validate that a missing cell carries no value."""
        if self.is_missing and self.value is not None:
            raise ValueError("A missing cell cannot carry a value")

    @property
    def is_unset(self) -> bool:
        return self.value is None and not self.is_missing

    @property
    def effective_value(self) -> Optional[str]:
        """Value to use downstream; None for missing and unset cells."""
        return None if self.is_missing else self.value


@dataclass(frozen=True)
class DataRowSeries:
    """Cells of one data row belonging to a single statistic."""

    statistic: Optional[Statistic] = None
    cells: Tuple[DataCell, ...] = ()


@dataclass(frozen=True)
class DataRow:
    """One logical row: a series per declared statistic, in order."""

    series: Tuple[DataRowSeries, ...] = ()

    @property
    def cell_counts(self) -> List[int]:
        return [len(item.cells) for item in self.series]


@dataclass(frozen=True)
class TableData:
    """The data matrix of a table."""

    rows: Tuple[DataRow, ...] = ()


@dataclass(frozen=True)
class Table:
    """A single cross-tabulation with its banners, statistics and data."""

    title: str = ""
    name: Optional[str] = None
    controls: Tuple[Control, ...] = ()
    row_edge: Optional[Edge] = None
    column_edge: Optional[Edge] = None
    statistics: Tuple[Statistic, ...] = ()
    data: TableData = field(default_factory=TableData)

    @property
    def label(self) -> str:
        """Identifier used in error messages: the name, else the title."""
        return self.name or self.title or "<unnamed>"

    def shape(self) -> Tuple[int, int]:
        """Get ``(row_count, column_count)`` of the data matrix.

        The column count is taken from the first row's first series.
        """
        rows = self.data.rows
        if not rows:
            return (0, 0)
        first = rows[0]
        columns = len(first.series[0].cells) if first.series else 0
        return (len(rows), columns)

    def statistic_types(self) -> List[str]:
        """Get declared statistic type names in declaration order."""
        return [statistic.type for statistic in self.statistics]

    def row_labels(self) -> List[str]:
        """Get element labels of the row edge's first group."""
        return _first_group_labels(self.row_edge)

    def column_labels(self) -> List[str]:
        """Get element labels of the column edge's first group."""
        return _first_group_labels(self.column_edge)

    def statistic_data(self, index: int) -> Optional[List[List[Optional[str]]]]:
        """Get the value grid for the statistic at ``index``.

        Args:
            index: Position of the statistic in declaration order

        Returns:
            One list per data row holding the cell values of that row's
            series for the statistic (None for missing or unset cells), or
            None if ``index`` is out of range

        Examples:
            >>> table.statistic_types()
            ['Percent', 'Count']
            >>> table.statistic_data(1)[0]
            ['713', None]
        """
        if not 0 <= index < len(self.statistics):
            return None
        return [
            [cell.effective_value for cell in row.series[index].cells]
            for row in self.data.rows
            if index < len(row.series)
        ]


def _first_group_labels(edge: Optional[Edge]) -> List[str]:
    if edge is None or not edge.groups:
        return []
    return edge.groups[0].labels


@dataclass(frozen=True)
class Document:
    """Root of a parsed XtabML report."""

    version: str = ""
    date: Optional[str] = None
    time: Optional[str] = None
    origin: Optional[str] = None
    user: Optional[str] = None
    languages: Tuple[Language, ...] = ()
    control_types: Tuple[ControlType, ...] = ()
    statistic_types: Tuple[StatisticType, ...] = ()
    controls: Tuple[Control, ...] = ()
    tables: Tuple[Table, ...] = ()

    @property
    def is_empty(self) -> bool:
        """Whether no content at all was parsed."""
        return self == Document()

    def find_table(self, name: str) -> Optional[Table]:
        """Find the first table with the given name."""
        return next((table for table in self.tables if table.name == name), None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the document to nested dictionaries (collections stay tuples)."""
        return asdict(self)
