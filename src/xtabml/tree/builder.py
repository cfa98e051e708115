"""Streaming XtabML document builder.

This module implements the state machine that turns a stream of structural
XML events into the immutable document model. Each opening event creates a
draft in the :class:`ParserContext`; the matching closing event freezes the
draft and moves it into its parent.
"""

import time
from functools import partial
from typing import Callable, Dict, Iterable, Iterator, Optional

from xtabml.shared import (
    MissingElementError,
    ParserConfig,
    StructuralError,
    get_logger,
)
from xtabml.tokenization import EventType, XMLEvent
from xtabml.tree.context import (
    CellDraft,
    ContextStack,
    ControlTypeDraft,
    EdgeDraft,
    ElementDraft,
    Focus,
    GroupDraft,
    LanguageDraft,
    ParserContext,
    RowDraft,
    StatisticTypeDraft,
    SummaryDraft,
    TableDraft,
)
from xtabml.tree.model import (
    Axis,
    Control,
    ControlType,
    DataCell,
    Document,
    Language,
    Statistic,
    StatisticType,
    Summary,
)
from xtabml.tree.validation import TableValidator

# Element vocabulary
ROOT = "xtab"
TEXT = "t"
CONTROL = "control"
TABLE = "table"
EDGE = "edge"
GROUP = "group"
ELEMENT = "element"
SUMMARY = "summary"
STATISTIC = "statistic"
ROW = "r"
CELL_GROUP = "c"
VALUE = "v"
MISSING = "x"
LANGUAGE = "language"
CONTROL_TYPE = "controltype"
STATISTIC_TYPE = "statistictype"
METADATA_ELEMENTS = ("date", "time", "origin", "user")

# Attributes read per element kind; everything else is ignored
ALLOWED_ATTRIBUTES: Dict[str, tuple] = {
    ROOT: ("version",),
    TABLE: ("name",),
    STATISTIC_TYPE: ("name",),
    CONTROL_TYPE: ("name", "status"),
    CONTROL: ("type",),
    STATISTIC: ("type",),
    EDGE: ("axis",),
    LANGUAGE: ("lang", "base"),
}

Attributes = Dict[str, str]
OpenHandler = Callable[[ParserContext, Attributes], None]
CloseHandler = Callable[[ParserContext], None]


def capture_opaque_body(
    events: Iterator[XMLEvent],
    name: str,
    max_depth: Optional[int] = None,
    on_open: Optional[Callable[[str], None]] = None,
) -> str:
    """Consume an element's body up to and including its closing event.

    Nested markup is skipped; only its text runs are kept, each trimmed and
    concatenated in document order.

    Args:
        events: Event iterator positioned just after the element's START
        name: Name of the element being captured
        max_depth: Deepest nesting allowed, counting the element itself as 1
        on_open: Called with the name of every nested element

    Returns:
        Concatenated text of the body

    Raises:
        StructuralError: If input ends before the body is closed, or the
            body nests deeper than ``max_depth``
    """
    runs = []
    depth = 1
    for event in events:
        if event.type is EventType.TEXT:
            run = event.text.strip()
            if run:
                runs.append(run)
            continue
        if event.opens and on_open is not None:
            on_open(event.name)
        if event.type is EventType.START:
            depth += 1
            if max_depth is not None and depth > max_depth:
                raise StructuralError(
                    f"Maximum nesting depth exceeded inside <{name}> at <{event.name}>"
                )
        elif event.type is EventType.END:
            depth -= 1
            if depth == 0:
                return "".join(runs)
    raise StructuralError(f"Unterminated <{name}> body: end of input reached")


class XtabMLBuilder:
    """State machine that assembles a Document from structural events.

    A builder may be reused for any number of sequential parses but must
    not be shared by concurrent ones; each :meth:`build` call owns a fresh
    :class:`ParserContext`.
    """

    def __init__(
        self,
        config: Optional[ParserConfig] = None,
        correlation_id: Optional[str] = None
    ) -> None:
        """Initialize document builder.

        Args:
            config: Parser configuration (defaults to strict)
            correlation_id: Optional correlation ID for request tracking
        """
        self.config = config or ParserConfig()
        self.correlation_id = correlation_id or self.config.correlation_id
        self.logger = get_logger(__name__, self.correlation_id, "xtabml_builder")
        self.validator = TableValidator(self.config.cell_policy, self.correlation_id)
        self._building = False

        self._open_handlers: Dict[str, OpenHandler] = {
            ROOT: self._open_root,
            TABLE: self._open_table,
            EDGE: self._open_edge,
            GROUP: self._open_group,
            ELEMENT: self._open_element,
            SUMMARY: self._open_summary,
            STATISTIC: self._open_statistic,
            ROW: self._open_row,
            CELL_GROUP: self._open_cell_group,
            VALUE: self._open_value,
            MISSING: self._open_missing,
            LANGUAGE: self._open_language,
            CONTROL_TYPE: self._open_control_type,
            STATISTIC_TYPE: self._open_statistic_type,
        }
        self._close_handlers: Dict[str, CloseHandler] = {
            TEXT: self._close_text,
            TABLE: self._close_table,
            EDGE: self._close_edge,
            GROUP: self._close_group,
            ELEMENT: self._close_element,
            SUMMARY: self._close_summary,
            ROW: self._close_row,
            CELL_GROUP: self._close_cell_group,
            VALUE: self._close_value,
            LANGUAGE: self._close_language,
            CONTROL_TYPE: self._close_control_type,
            STATISTIC_TYPE: self._close_statistic_type,
        }
        for name in METADATA_ELEMENTS:
            self._close_handlers[name] = partial(self._close_metadata, name=name)

    @property
    def strict(self) -> bool:
        return self.config.is_strict

    def new_context(self) -> ParserContext:
        """Create the empty state a parse starts from."""
        return ParserContext(stack=ContextStack(self.config.limits.max_depth))

    def build(self, events: Iterable[XMLEvent]) -> Document:
        """Build a document from a complete event stream.

        Args:
            events: Structural events in document order

        Returns:
            The finished, validated Document

        Raises:
            StructuralError: If a document invariant is violated
            MissingElementError: If the root element is not ``xtab``
            TokenError: Propagated from the event source
        """
        if self._building:
            raise RuntimeError("XtabMLBuilder is already building a document")
        self._building = True
        start_time = time.time()
        try:
            context = self.new_context()
            stream = iter(events)
            for event in stream:
                self.handle_event(context, event, stream)
            document = self.finish(context)
        finally:
            self._building = False

        self.logger.info(
            "Document built",
            extra={
                "table_count": len(document.tables),
                "element_count": context.element_count,
                "processing_time_ms": (time.time() - start_time) * 1000,
            }
        )
        return document

    def handle_event(
        self,
        context: ParserContext,
        event: XMLEvent,
        stream: Optional[Iterator[XMLEvent]] = None
    ) -> None:
        """Apply one event to the parse state.

        Args:
            context: State of the parse in progress
            event: Event to apply
            stream: Remaining events, needed when a control body is captured
        """
        if event.type is EventType.TEXT:
            context.add_text(event.text)
            return

        if event.type is EventType.END:
            context.stack.pop(event.name)
            self.close(context, event.name)
            return

        self._count_element(context, event.name)
        if event.type is EventType.START:
            context.stack.push(event.name)

        if event.name == CONTROL:
            self._capture_control(context, event, stream)
            return

        self.open(context, event)
        if event.type is EventType.EMPTY:
            self.close(context, event.name)

    def open(self, context: ParserContext, event: XMLEvent) -> None:
        """Run the opening transition for ``event``'s element."""
        if not context.root_seen:
            if event.name != ROOT:
                raise MissingElementError(
                    ROOT, f"Missing required root element <{ROOT}>, found <{event.name}>"
                )
            context.root_seen = True

        context.clear_text()
        handler = self._open_handlers.get(event.name)
        if handler is not None:
            handler(context, self._read_attributes(context, event))

    def close(self, context: ParserContext, name: str) -> None:
        """Run the closing transition for ``name``."""
        handler = self._close_handlers.get(name)
        if handler is not None:
            handler(context)
        # Text never leaks from one element into an unrelated sibling
        context.clear_text()

    def finish(self, context: ParserContext) -> Document:
        """Freeze the document once the event stream is exhausted."""
        if context.stack.depth:
            raise StructuralError(
                f"End of input inside <{context.stack.top}>",
                table=context.table_label,
            )
        if not context.root_seen and context.has_text:
            raise MissingElementError(ROOT)
        return context.document.freeze()

    # Attribute and resource helpers

    def _read_attributes(self, context: ParserContext, event: XMLEvent) -> Attributes:
        attributes: Attributes = {}
        for key in ALLOWED_ATTRIBUTES.get(event.name, ()):
            value = event.attributes.get(key)
            if value is None:
                continue
            if isinstance(value, bytes):
                try:
                    value = value.decode("utf-8")
                except UnicodeDecodeError as exc:
                    raise StructuralError(
                        f"Attribute '{key}' of <{event.name}> is not valid UTF-8",
                        table=context.table_label,
                    ) from exc
            if not isinstance(value, str):
                raise StructuralError(
                    f"Attribute '{key}' of <{event.name}> is not text",
                    table=context.table_label,
                )
            attributes[key] = value
        return attributes

    def _count_element(self, context: ParserContext, name: str) -> None:
        context.element_count += 1
        limit = self.config.limits.max_elements
        if limit is not None and context.element_count > limit:
            raise StructuralError(f"Element limit of {limit} exceeded at <{name}>")

    def _capture_control(
        self,
        context: ParserContext,
        event: XMLEvent,
        stream: Optional[Iterator[XMLEvent]]
    ) -> None:
        if not context.root_seen:
            raise MissingElementError(ROOT)
        attributes = self._read_attributes(context, event)
        text = ""
        if event.type is EventType.START:
            if stream is None:
                raise StructuralError(
                    f"Unterminated <{CONTROL}> body: no events follow",
                    table=context.table_label,
                )
            text = capture_opaque_body(
                stream,
                CONTROL,
                max_depth=self.config.limits.max_depth - context.stack.depth + 1,
                on_open=lambda name: self._count_element(context, name),
            )
            context.stack.pop(CONTROL)

        control = Control(type=attributes.get("type", ""), text=text)
        if context.table is not None:
            context.table.controls.append(control)
        else:
            context.document.controls.append(control)
        context.clear_text()

    def _place_cell(self, context: ParserContext, cell: DataCell) -> None:
        row = context.row
        if row is None:
            return
        if row.cursor_in_range:
            row.series[row.cursor].cells.append(cell)
            return
        if self.strict:
            raise StructuralError(
                f"Cell-group {row.cursor + 1} has no matching statistic "
                f"({len(row.series)} declared)",
                table=context.table_label,
            )
        self.logger.debug(
            "Dropping cell outside declared statistics",
            extra={"table": context.table_label, "cursor": row.cursor},
        )

    # Opening transitions

    def _open_root(self, context: ParserContext, attributes: Attributes) -> None:
        context.document.version = attributes.get("version", "")

    def _open_table(self, context: ParserContext, attributes: Attributes) -> None:
        if context.table is not None:
            raise StructuralError("Tables cannot be nested", table=context.table_label)
        context.table = TableDraft(name=attributes.get("name"))
        context.enter_focus(Focus.TABLE_TITLE)

    def _open_edge(self, context: ParserContext, attributes: Attributes) -> None:
        if context.table is not None:
            context.edge = EdgeDraft(axis=attributes.get("axis", ""))

    def _open_group(self, context: ParserContext, attributes: Attributes) -> None:
        if context.edge is not None:
            context.group = GroupDraft()

    def _open_element(self, context: ParserContext, attributes: Attributes) -> None:
        if context.group is not None:
            context.element = ElementDraft()
            context.enter_focus(Focus.ELEMENT_LABEL)

    def _open_summary(self, context: ParserContext, attributes: Attributes) -> None:
        if context.group is not None:
            context.summary = SummaryDraft()
            context.enter_focus(Focus.SUMMARY_TEXT)

    def _open_statistic(self, context: ParserContext, attributes: Attributes) -> None:
        if context.table is not None:
            context.table.statistics.append(Statistic(type=attributes.get("type", "")))

    def _open_row(self, context: ParserContext, attributes: Attributes) -> None:
        if context.table is not None:
            context.row = RowDraft.for_statistics(context.table.statistics)

    def _open_cell_group(self, context: ParserContext, attributes: Attributes) -> None:
        if context.row is not None:
            context.in_cell_group = True

    def _open_value(self, context: ParserContext, attributes: Attributes) -> None:
        if context.in_cell_group:
            context.cell = CellDraft()

    def _open_missing(self, context: ParserContext, attributes: Attributes) -> None:
        if context.in_cell_group:
            self._place_cell(context, DataCell(is_missing=True))

    def _open_language(self, context: ParserContext, attributes: Attributes) -> None:
        context.language = LanguageDraft(
            lang=attributes.get("lang", ""), base=attributes.get("base")
        )
        context.enter_focus(Focus.LANGUAGE_TEXT)

    def _open_control_type(self, context: ParserContext, attributes: Attributes) -> None:
        context.control_type = ControlTypeDraft(
            name=attributes.get("name", ""), status=attributes.get("status")
        )
        context.enter_focus(Focus.CONTROL_TYPE_TEXT)

    def _open_statistic_type(self, context: ParserContext, attributes: Attributes) -> None:
        context.statistic_type = StatisticTypeDraft(name=attributes.get("name", ""))
        context.enter_focus(Focus.STATISTIC_TYPE_TEXT)

    # Closing transitions

    def _close_text(self, context: ParserContext) -> None:
        text = context.take_text()
        focus = context.focus
        if focus is Focus.TABLE_TITLE:
            if context.table is not None and not context.table.title:
                context.table.title = text
        elif focus is Focus.ELEMENT_LABEL:
            self._complete_element(context, text)
        elif focus is Focus.SUMMARY_TEXT:
            if context.summary is not None:
                context.summary.text = text
        elif focus is Focus.STATISTIC_TYPE_TEXT:
            if context.statistic_type is not None:
                context.statistic_type.text = text
        elif focus is Focus.CONTROL_TYPE_TEXT:
            if context.control_type is not None:
                context.control_type.text = text
        elif focus is Focus.LANGUAGE_TEXT:
            if context.language is not None:
                context.language.description = text

    def _complete_element(self, context: ParserContext, text: str) -> None:
        if context.element is None or context.group is None:
            return
        if text:
            element = context.group.add_element(text)
            context.element.text = element.text
            context.element.index = element.index
        context.element = None

    def _close_element(self, context: ParserContext) -> None:
        if context.element is not None:
            # No <t> holder: the label is the element's own text
            self._complete_element(context, context.take_text())
        context.leave_focus(Focus.ELEMENT_LABEL)

    def _close_summary(self, context: ParserContext) -> None:
        summary = context.summary
        if summary is not None and context.group is not None:
            text = summary.text if summary.text is not None else context.take_text()
            if text:
                context.group.summaries.append(Summary(text=text))
        context.summary = None
        context.leave_focus(Focus.SUMMARY_TEXT)

    def _close_group(self, context: ParserContext) -> None:
        if context.group is not None and context.edge is not None:
            context.edge.groups.append(context.group.freeze())
        context.group = None

    def _close_edge(self, context: ParserContext) -> None:
        edge, table = context.edge, context.table
        context.edge = None
        if edge is None or table is None:
            return

        kind = Axis.parse(edge.axis)
        if kind is None:
            self.logger.debug(
                "Ignoring edge with unrecognized axis",
                extra={"axis": edge.axis, "table": table.label},
            )
            return

        slot = "row_edge" if kind is Axis.ROW else "column_edge"
        if getattr(table, slot) is not None:
            if self.strict:
                raise StructuralError(
                    f"Duplicate {kind.name.lower()} edge", table=table.label
                )
            self.logger.warning(
                "Replacing duplicate edge",
                extra={"axis": edge.axis, "table": table.label},
            )
        setattr(table, slot, edge.freeze())

    def _close_value(self, context: ParserContext) -> None:
        cell = context.cell
        if cell is None:
            return
        text = context.take_text()
        if text:
            cell.value = text
            cell.is_missing = False
        self._place_cell(context, cell.freeze())
        context.cell = None

    def _close_cell_group(self, context: ParserContext) -> None:
        if context.row is not None:
            context.row.cursor += 1
        context.in_cell_group = False

    def _close_row(self, context: ParserContext) -> None:
        row, table = context.row, context.table
        context.row = None
        if row is None or table is None:
            return
        if self.strict and row.cursor != len(row.series):
            raise StructuralError(
                f"Data row {len(table.rows)} supplies {row.cursor} cell-groups "
                f"but {len(row.series)} statistics are declared",
                table=table.label,
            )
        table.rows.append(row.freeze())

    def _close_table(self, context: ParserContext) -> None:
        draft = context.table
        if draft is None:
            return
        context.leave_focus(Focus.TABLE_TITLE)
        table = draft.freeze()
        self.validator.validate(table)
        context.document.tables.append(table)
        context.table = None

        self.logger.debug(
            "Table completed",
            extra={
                "table": table.label,
                "shape": table.shape(),
                "statistic_count": len(table.statistics),
            }
        )

    def _close_language(self, context: ParserContext) -> None:
        draft = context.language
        if draft is not None:
            description = draft.description
            if description is None:
                description = context.take_text()
            context.document.languages.append(
                Language(lang=draft.lang, base=draft.base, description=description)
            )
        context.language = None
        context.leave_focus(Focus.LANGUAGE_TEXT)

    def _close_control_type(self, context: ParserContext) -> None:
        draft = context.control_type
        if draft is not None:
            text = draft.text if draft.text is not None else context.take_text()
            context.document.control_types.append(
                ControlType(name=draft.name, status=draft.status, text=text)
            )
        context.control_type = None
        context.leave_focus(Focus.CONTROL_TYPE_TEXT)

    def _close_statistic_type(self, context: ParserContext) -> None:
        draft = context.statistic_type
        if draft is not None:
            text = draft.text if draft.text is not None else context.take_text()
            context.document.statistic_types.append(
                StatisticType(name=draft.name, text=text)
            )
        context.statistic_type = None
        context.leave_focus(Focus.STATISTIC_TYPE_TEXT)

    def _close_metadata(self, context: ParserContext, name: str) -> None:
        # Only direct children of the root carry document metadata
        if context.stack.top != ROOT:
            return
        setattr(context.document, name, context.take_text() or None)
