"""Parse-time state for the XtabML builder.

Key Components:
    ContextStack: Chain of currently open element names
    Focus: Which in-progress entity a pending ``<t>`` text run belongs to
    ParserContext: Every in-progress entity of one parse, owned exclusively
        by the builder loop driving it

The draft classes are mutable stand-ins for the frozen model entities; each
``freeze()`` produces the finished value once the closing event arrives.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional, Tuple

from xtabml.shared import StructuralError
from xtabml.tree.model import (
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


class ContextStack:
    """Ancestor chain of the currently open elements."""

    def __init__(self, max_depth: Optional[int] = None) -> None:
        self._names: List[str] = []
        self.max_depth = max_depth

    def push(self, name: str) -> None:
        """Record that ``name`` was opened.

        Raises:
            StructuralError: If the nesting would exceed ``max_depth``
        """
        if self.max_depth is not None and len(self._names) >= self.max_depth:
            raise StructuralError(
                f"Maximum nesting depth of {self.max_depth} exceeded at <{name}>"
            )
        self._names.append(name)

    def pop(self, name: str) -> str:
        """Record that ``name`` was closed; it must be the innermost element."""
        if not self._names:
            raise StructuralError(f"Closing </{name}> with no open element")
        if self._names[-1] != name:
            raise StructuralError(
                f"Closing </{name}> while <{self._names[-1]}> is open"
            )
        return self._names.pop()

    @property
    def top(self) -> Optional[str]:
        return self._names[-1] if self._names else None

    @property
    def parent(self) -> Optional[str]:
        """Name of the element enclosing the innermost one."""
        return self._names[-2] if len(self._names) > 1 else None

    @property
    def depth(self) -> int:
        return len(self._names)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)


class Focus(Enum):
    """Target of the text held by the next closing ``<t>``."""

    NONE = auto()
    TABLE_TITLE = auto()
    ELEMENT_LABEL = auto()
    SUMMARY_TEXT = auto()
    STATISTIC_TYPE_TEXT = auto()
    CONTROL_TYPE_TEXT = auto()
    LANGUAGE_TEXT = auto()


@dataclass
class ElementDraft:
    text: str = ""
    index: Optional[int] = None


@dataclass
class SummaryDraft:
    text: Optional[str] = None


@dataclass
class GroupDraft:
    elements: List[Element] = field(default_factory=list)
    summaries: List[Summary] = field(default_factory=list)
    next_index: int = 0

    def add_element(self, text: str) -> Element:
        """Append a label, assigning the next sequence index."""
        element = Element(text=text, index=self.next_index)
        self.next_index += 1
        self.elements.append(element)
        return element

    def freeze(self) -> Group:
        return Group(elements=tuple(self.elements), summaries=tuple(self.summaries))


@dataclass
class EdgeDraft:
    axis: str = ""
    groups: List[Group] = field(default_factory=list)

    def freeze(self) -> Edge:
        return Edge(axis=self.axis, groups=tuple(self.groups))


@dataclass
class CellDraft:
    value: Optional[str] = None
    is_missing: bool = False

    def freeze(self) -> DataCell:
        return DataCell(value=self.value, is_missing=self.is_missing)


@dataclass
class SeriesDraft:
    statistic: Optional[Statistic] = None
    cells: List[DataCell] = field(default_factory=list)

    def freeze(self) -> DataRowSeries:
        return DataRowSeries(statistic=self.statistic, cells=tuple(self.cells))


@dataclass
class RowDraft:
    """Data row under construction with its series cursor."""

    series: List[SeriesDraft] = field(default_factory=list)
    cursor: int = 0

    @classmethod
    def for_statistics(cls, statistics: List[Statistic]) -> "RowDraft":
        return cls(series=[SeriesDraft(statistic=statistic) for statistic in statistics])

    @property
    def cursor_in_range(self) -> bool:
        return self.cursor < len(self.series)

    def freeze(self) -> DataRow:
        return DataRow(series=tuple(item.freeze() for item in self.series))


@dataclass
class TableDraft:
    name: Optional[str] = None
    title: str = ""
    controls: List[Control] = field(default_factory=list)
    row_edge: Optional[Edge] = None
    column_edge: Optional[Edge] = None
    statistics: List[Statistic] = field(default_factory=list)
    rows: List[DataRow] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.name or self.title or "<unnamed>"

    def freeze(self) -> Table:
        return Table(
            title=self.title,
            name=self.name,
            controls=tuple(self.controls),
            row_edge=self.row_edge,
            column_edge=self.column_edge,
            statistics=tuple(self.statistics),
            data=TableData(rows=tuple(self.rows)),
        )


@dataclass
class StatisticTypeDraft:
    name: str = ""
    text: Optional[str] = None


@dataclass
class ControlTypeDraft:
    name: str = ""
    status: Optional[str] = None
    text: Optional[str] = None


@dataclass
class LanguageDraft:
    lang: str = ""
    base: Optional[str] = None
    description: Optional[str] = None


@dataclass
class DocumentDraft:
    version: str = ""
    date: Optional[str] = None
    time: Optional[str] = None
    origin: Optional[str] = None
    user: Optional[str] = None
    languages: List[Language] = field(default_factory=list)
    control_types: List[ControlType] = field(default_factory=list)
    statistic_types: List[StatisticType] = field(default_factory=list)
    controls: List[Control] = field(default_factory=list)
    tables: List[Table] = field(default_factory=list)

    def freeze(self) -> Document:
        return Document(
            version=self.version,
            date=self.date,
            time=self.time,
            origin=self.origin,
            user=self.user,
            languages=tuple(self.languages),
            control_types=tuple(self.control_types),
            statistic_types=tuple(self.statistic_types),
            controls=tuple(self.controls),
            tables=tuple(self.tables),
        )


@dataclass
class ParserContext:
    """All mutable state of a single parse.

    Holds at most one in-progress instance per entity kind, the focus stack
    and the shared text accumulator.
    """

    stack: ContextStack = field(default_factory=ContextStack)
    document: DocumentDraft = field(default_factory=DocumentDraft)
    root_seen: bool = False
    element_count: int = 0

    table: Optional[TableDraft] = None
    edge: Optional[EdgeDraft] = None
    group: Optional[GroupDraft] = None
    element: Optional[ElementDraft] = None
    summary: Optional[SummaryDraft] = None
    row: Optional[RowDraft] = None
    cell: Optional[CellDraft] = None
    in_cell_group: bool = False
    statistic_type: Optional[StatisticTypeDraft] = None
    control_type: Optional[ControlTypeDraft] = None
    language: Optional[LanguageDraft] = None

    _focus: List[Focus] = field(default_factory=list)
    _text: List[str] = field(default_factory=list)

    @property
    def focus(self) -> Focus:
        return self._focus[-1] if self._focus else Focus.NONE

    def enter_focus(self, focus: Focus) -> None:
        self._focus.append(focus)

    def leave_focus(self, focus: Focus) -> None:
        """Drop ``focus`` if it is current, restoring the enclosing one."""
        if self._focus and self._focus[-1] is focus:
            self._focus.pop()

    def add_text(self, run: str) -> None:
        """Accumulate one text run, trimmed; whitespace-only runs are ignored."""
        run = run.strip()
        if run:
            self._text.append(run)

    def take_text(self) -> str:
        """Return the accumulated text and clear the accumulator."""
        text = "".join(self._text)
        self._text.clear()
        return text

    def clear_text(self) -> None:
        self._text.clear()

    @property
    def has_text(self) -> bool:
        return bool(self._text)

    @property
    def table_label(self) -> Optional[str]:
        return self.table.label if self.table is not None else None
