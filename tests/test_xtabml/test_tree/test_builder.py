"""Tests for the XtabML document builder state machine.

Markup-based tests run through the lxml token source; event-based tests
drive the builder directly to cover self-closing events and inputs lxml
would reject before the builder sees them.
"""

import logging
from typing import Iterator, List, Optional

import pytest

from xtabml.shared import (
    LimitsConfig,
    MissingElementError,
    ParserConfig,
    StructuralError,
)
from xtabml.tokenization import LxmlEventSource, XMLEvent
from xtabml.tree import (
    Document,
    Focus,
    XtabMLBuilder,
    capture_opaque_body,
)

LENIENT = ParserConfig.lenient()


def build(markup: str, config: Optional[ParserConfig] = None) -> Document:
    return XtabMLBuilder(config).build(LxmlEventSource().events([markup]))


def table_markup(
    body: str,
    statistics: List[str] = ("Percent",),
    name: str = "t1",
) -> str:
    stats = "".join(f'<statistic type="{s}"/>' for s in statistics)
    return f'<xtab><table name="{name}"><t>Title</t>{stats}<data>{body}</data></table></xtab>'


class TestDocumentLevel:
    """Test root, metadata and document-level declarations."""

    def test_version_attribute(self) -> None:
        """Test that the root version is recorded."""
        assert build('<xtab version="1.1"/>').version == "1.1"

    def test_missing_version_defaults_to_empty(self) -> None:
        """Test that a root without a version yields an empty string."""
        document = build("<xtab></xtab>")

        assert document.version == ""
        assert document.tables == ()

    def test_empty_event_stream(self) -> None:
        """Test that no events yield an empty document."""
        document = XtabMLBuilder().build([])

        assert document == Document()
        assert document.is_empty

    def test_wrong_root_raises(self) -> None:
        """Test that a non-xtab root is rejected."""
        with pytest.raises(MissingElementError) as exc_info:
            build("<report><table/></report>")

        assert exc_info.value.element == "xtab"
        assert "<report>" in str(exc_info.value)

    def test_text_without_root_raises(self) -> None:
        """Test that stray text with no root element is rejected."""
        with pytest.raises(MissingElementError):
            XtabMLBuilder().build([XMLEvent.characters("orphan")])

    def test_metadata_fields(self) -> None:
        """Test date, time, origin and user with entity decoding."""
        document = build(
            "<xtab><date>2024-03-01</date><time>10:15</time>"
            "<origin>Survey Tool 5</origin><user>Test &amp; User</user></xtab>"
        )

        assert document.date == "2024-03-01"
        assert document.time == "10:15"
        assert document.origin == "Survey Tool 5"
        assert document.user == "Test & User"

    def test_metadata_only_under_root(self) -> None:
        """Test that metadata-named elements inside a table are ignored."""
        document = build(
            '<xtab><table name="t1"><user>nested</user></table></xtab>'
        )

        assert document.user is None

    def test_empty_metadata_is_none(self) -> None:
        """Test that an empty metadata element leaves the field unset."""
        assert build("<xtab><date>  </date></xtab>").date is None

    def test_declarations(self) -> None:
        """Test languages, control types and statistic types."""
        document = build(
            '<xtab>'
            '<language lang="en" base="en-GB"><t>English</t></language>'
            '<language lang="nl">Dutch</language>'
            '<controltype name="base" status="label"><t>Base</t></controltype>'
            '<statistictype name="Percent"><t>Column percent</t></statistictype>'
            '</xtab>'
        )

        assert [(l.lang, l.base, l.description) for l in document.languages] == [
            ("en", "en-GB", "English"),
            ("nl", None, "Dutch"),
        ]
        assert document.control_types[0].name == "base"
        assert document.control_types[0].status == "label"
        assert document.control_types[0].text == "Base"
        assert document.statistic_types[0].name == "Percent"
        assert document.statistic_types[0].text == "Column percent"


class TestControls:
    """Test greedy capture of control bodies."""

    def test_document_control(self) -> None:
        """Test a control directly under the root."""
        document = build('<xtab><control type="project">Phone 1</control></xtab>')

        assert document.controls[0].type == "project"
        assert document.controls[0].text == "Phone 1"

    def test_table_control_with_nested_markup(self) -> None:
        """Test that nested text holders are flattened into the control text."""
        document = build(
            '<xtab><table name="t1"><t>Title</t>'
            '<control type="base"><t>Total sample;</t> <t>base n = 713</t></control>'
            '</table></xtab>'
        )
        table = document.tables[0]

        assert table.controls[0].text == "Total sample;base n = 713"
        assert table.title == "Title"
        assert document.controls == ()

    def test_control_text_does_not_become_title(self) -> None:
        """Test that a control's text holder is not taken as the table title."""
        document = build(
            '<xtab><table name="t1"><control type="base"><t>Base</t></control>'
            '<t>Real title</t></table></xtab>'
        )

        assert document.tables[0].title == "Real title"

    def test_self_closing_control(self) -> None:
        """Test a control given as a single self-closing event."""
        document = XtabMLBuilder().build([
            XMLEvent.start("xtab"),
            XMLEvent.empty("control", {"type": "weight"}),
            XMLEvent.end("xtab"),
        ])

        assert document.controls[0].type == "weight"
        assert document.controls[0].text == ""

    def test_unterminated_control_raises(self) -> None:
        """Test that input ending inside a control body is rejected."""
        events = [
            XMLEvent.start("xtab"),
            XMLEvent.start("control", {"type": "base"}),
            XMLEvent.characters("never closed"),
        ]

        with pytest.raises(StructuralError, match="Unterminated <control> body"):
            XtabMLBuilder().build(events)


class TestCaptureOpaqueBody:
    """Test the reusable body capture routine."""

    def test_captures_until_matching_end(self) -> None:
        """Test that capture stops at the element's own closing event."""
        events: Iterator[XMLEvent] = iter([
            XMLEvent.characters(" a "),
            XMLEvent.start("t"),
            XMLEvent.characters("b"),
            XMLEvent.end("t"),
            XMLEvent.end("control"),
            XMLEvent.start("after"),
        ])

        assert capture_opaque_body(events, "control") == "ab"
        assert next(events).name == "after"

    def test_reports_nested_elements(self) -> None:
        """Test that every nested element is reported to the callback."""
        seen: List[str] = []
        events = iter([
            XMLEvent.start("t"),
            XMLEvent.empty("br"),
            XMLEvent.end("t"),
            XMLEvent.end("control"),
        ])

        capture_opaque_body(events, "control", on_open=seen.append)

        assert seen == ["t", "br"]

    def test_depth_limit(self) -> None:
        """Test that nesting inside the body is bounded."""
        events = iter([XMLEvent.start("t"), XMLEvent.start("t")])

        with pytest.raises(StructuralError, match="Maximum nesting depth"):
            capture_opaque_body(events, "control", max_depth=2)

    def test_end_of_input(self) -> None:
        """Test that exhaustion before the closing event is an error."""
        with pytest.raises(StructuralError, match="Unterminated <control> body"):
            capture_opaque_body(iter([XMLEvent.start("t")]), "control")


class TestTablesAndEdges:
    """Test table, edge, group, element and summary transitions."""

    def test_table_name_and_title(self) -> None:
        """Test the table's name attribute and title text."""
        table = build(
            '<xtab><table name="97f48ec3"><t>q4: Age</t></table></xtab>'
        ).tables[0]

        assert table.name == "97f48ec3"
        assert table.title == "q4: Age"
        assert table.label == "97f48ec3"

    def test_title_after_edges(self) -> None:
        """Test that element labels never leak into the table title."""
        table = build(
            '<xtab><table><edge axis="r"><group><element><t>A</t></element>'
            '</group></edge><t>Late title</t></table></xtab>'
        ).tables[0]

        assert table.title == "Late title"
        assert table.row_labels() == ["A"]

    def test_element_indices_increase_from_zero(self) -> None:
        """Test that element indices are assigned in order."""
        table = build(
            '<xtab><table><edge axis="r"><group>'
            '<element><t>15 and under</t></element>'
            '<element><t>16-19 yrs</t></element>'
            '<element><t>NET</t></element>'
            '</group></edge></table></xtab>'
        ).tables[0]
        elements = table.row_edge.groups[0].elements

        assert [e.index for e in elements] == [0, 1, 2]
        assert [e.text for e in elements] == ["15 and under", "16-19 yrs", "NET"]

    def test_empty_label_skipped_without_consuming_index(self) -> None:
        """Test that unlabeled elements are dropped."""
        table = build(
            '<xtab><table><edge axis="c"><group>'
            '<element><t>A</t></element><element><t> </t></element>'
            '<element/><element><t>B</t></element>'
            '</group></edge></table></xtab>'
        ).tables[0]
        elements = table.column_edge.groups[0].elements

        assert [(e.text, e.index) for e in elements] == [("A", 0), ("B", 1)]

    def test_element_direct_text(self) -> None:
        """Test that an element without a text holder uses its own text."""
        table = build(
            '<xtab><table><edge axis="r"><group><element>Male</element>'
            '</group></edge></table></xtab>'
        ).tables[0]

        assert table.row_labels() == ["Male"]

    def test_summaries(self) -> None:
        """Test summaries with and without text holders; empty ones dropped."""
        group = build(
            '<xtab><table><edge axis="r"><group>'
            '<element><t>Male</t></element>'
            '<summary><t>NET</t></summary><summary>Total</summary><summary/>'
            '</group></edge></table></xtab>'
        ).tables[0].row_edge.groups[0]

        assert [s.text for s in group.summaries] == ["NET", "Total"]
        assert group.labels == ["Male"]

    def test_multiple_groups(self) -> None:
        """Test that groups are kept in order and indices restart."""
        edge = build(
            '<xtab><table><edge axis="c">'
            '<group><element><t>Total</t></element></group>'
            '<group><element><t>Phone</t></element><element><t>Web</t></element></group>'
            '</edge></table></xtab>'
        ).tables[0].column_edge

        assert len(edge.groups) == 2
        assert [e.index for e in edge.groups[1].elements] == [0, 1]

    def test_edge_axes(self) -> None:
        """Test row and column edge assignment."""
        table = build(
            '<xtab><table><edge axis="r"><group/></edge>'
            '<edge axis="c"><group/></edge></table></xtab>'
        ).tables[0]

        assert table.row_edge.axis == "r"
        assert table.column_edge.axis == "c"
        assert table.column_edge.groups[0].elements == ()

    def test_unknown_axis_dropped(self) -> None:
        """Test that an edge with an unrecognized axis is ignored."""
        table = build(
            '<xtab><table><edge axis="z"><group/></edge></table></xtab>'
        ).tables[0]

        assert table.row_edge is None
        assert table.column_edge is None

    def test_duplicate_edge_strict(self) -> None:
        """Test that a second row edge fails in strict mode."""
        with pytest.raises(StructuralError, match="Duplicate row edge") as exc_info:
            build(
                '<xtab><table name="dup"><edge axis="r"/><edge axis="r"/></table></xtab>'
            )

        assert exc_info.value.table == "dup"

    def test_duplicate_edge_lenient_replaces(self, caplog) -> None:
        """Test that lenient mode keeps the last edge and warns."""
        with caplog.at_level(logging.WARNING, logger="xtabml.tree.builder"):
            table = build(
                '<xtab><table><edge axis="r"><group><element><t>Old</t></element></group></edge>'
                '<edge axis="r"><group><element><t>New</t></element></group></edge>'
                '</table></xtab>',
                LENIENT,
            ).tables[0]

        assert table.row_labels() == ["New"]
        assert any("duplicate edge" in r.getMessage().lower() for r in caplog.records)

    def test_nested_table_raises(self) -> None:
        """Test that tables cannot contain tables."""
        with pytest.raises(StructuralError, match="Tables cannot be nested"):
            build('<xtab><table name="outer"><table/></table></xtab>')

    def test_multiple_tables(self) -> None:
        """Test that tables are kept in document order."""
        document = build(
            '<xtab><table name="a"/><table name="b"><t>B</t></table></xtab>'
        )

        assert [t.name for t in document.tables] == ["a", "b"]
        assert document.find_table("b").title == "B"


class TestData:
    """Test statistics, rows, cell-groups and cells."""

    def test_values_and_missing_marker(self) -> None:
        """Test that a missing marker lands at the right position."""
        table = build(table_markup(
            "<r><c><v>.140</v><x/><v>.200</v></c></r>"
        )).tables[0]
        cells = table.data.rows[0].series[0].cells

        assert [c.value for c in cells] == [".140", None, ".200"]
        assert cells[1].is_missing
        assert not cells[0].is_missing

    def test_empty_value_is_unset(self) -> None:
        """Test that a value element without text yields an unset cell."""
        cell = build(table_markup("<r><c><v> </v></c></r>")).tables[0].data.rows[0].series[0].cells[0]

        assert cell.value is None
        assert not cell.is_missing
        assert cell.is_unset

    def test_value_with_entity(self) -> None:
        """Test that cell text is entity-decoded and trimmed."""
        cell = build(table_markup("<r><c><v> &lt;1% </v></c></r>")).tables[0].data.rows[0].series[0].cells[0]

        assert cell.value == "<1%"

    def test_series_follow_statistics(self) -> None:
        """Test that each cell-group fills the series of the statistic at the cursor."""
        table = build(table_markup(
            "<r><c><v>350</v><v>120</v></c><c><v>.491</v><v>.480</v></c></r>"
            "<r><c><v>363</v><x/></c><c><v>.509</v><x/></c></r>",
            statistics=["Count", "Percent"],
        )).tables[0]
        first = table.data.rows[0]

        assert [s.statistic.type for s in first.series] == ["Count", "Percent"]
        assert [c.value for c in first.series[1].cells] == [".491", ".480"]
        assert table.data.rows[1].series[1].cells[1].is_missing

    def test_self_closing_statistic_and_missing_events(self) -> None:
        """Test EMPTY events for statistics and missing markers."""
        events = [
            XMLEvent.start("xtab"),
            XMLEvent.start("table", {"name": "e"}),
            XMLEvent.empty("statistic", {"type": "Count"}),
            XMLEvent.start("data"),
            XMLEvent.start("r"),
            XMLEvent.start("c"),
            XMLEvent.empty("x"),
            XMLEvent.end("c"),
            XMLEvent.end("r"),
            XMLEvent.end("data"),
            XMLEvent.end("table"),
            XMLEvent.end("xtab"),
        ]
        table = XtabMLBuilder().build(events).tables[0]

        assert table.statistic_types() == ["Count"]
        assert table.data.rows[0].series[0].cells[0].is_missing

    def test_cell_group_beyond_statistics_strict(self) -> None:
        """Test that a cell-group with no matching statistic fails in strict mode."""
        with pytest.raises(StructuralError, match="no matching statistic") as exc_info:
            build(table_markup("<r><c><v>1</v></c><c><v>2</v></c></r>"))

        assert exc_info.value.table == "t1"

    def test_cell_group_beyond_statistics_lenient(self) -> None:
        """Test that lenient mode drops cells it cannot place."""
        table = build(
            table_markup("<r><c><v>1</v></c><c><v>2</v></c></r>"),
            LENIENT,
        ).tables[0]

        assert [c.value for c in table.data.rows[0].series[0].cells] == ["1"]

    def test_short_final_row_strict(self) -> None:
        """Test that a row supplying too few cell-groups names its table."""
        markup = table_markup(
            "<r><c><v>1</v></c><c><v>.5</v></c></r>"
            "<r><c><v>2</v></c></r>",
            statistics=["Count", "Percent"],
            name="q7",
        )

        with pytest.raises(StructuralError) as exc_info:
            build(markup)

        assert exc_info.value.table == "q7"
        assert "q7" in str(exc_info.value)

    def test_row_count_not_divisible(self) -> None:
        """Test that the row count must divide evenly among statistics."""
        row = "<r><c><v>1</v></c><c><v>2</v></c></r>"
        markup = table_markup(row * 3, statistics=["Count", "Percent"])

        for config in (None, LENIENT):
            with pytest.raises(StructuralError, match="Incorrect number of rows"):
                build(markup, config)

    def test_unequal_cell_counts(self) -> None:
        """Test that series of one row must match in length under strict mode."""
        row = "<r><c><v>1</v><v>2</v></c><c><v>3</v></c></r>"
        markup = table_markup(row * 2, statistics=["Count", "Percent"])

        with pytest.raises(StructuralError, match="unequal cell counts"):
            build(markup)
        table = build(markup, LENIENT).tables[0]
        assert table.data.rows[0].cell_counts == [2, 1]

    def test_rows_without_statistics(self) -> None:
        """Test that empty rows of a table without statistics are accepted."""
        table = build('<xtab><table><data><r/><r/></data></table></xtab>').tables[0]

        assert len(table.data.rows) == 2
        assert table.data.rows[0].series == ()

    def test_data_outside_table_ignored(self) -> None:
        """Test that data rows outside a table do not affect the document."""
        document = build("<xtab><r><c><v>1</v></c></r></xtab>")

        assert document.tables == ()


class TestAttributes:
    """Test attribute decoding."""

    def test_bytes_attribute_decoded(self) -> None:
        """Test that UTF-8 bytes attribute values are decoded."""
        document = XtabMLBuilder().build([
            XMLEvent.start("xtab", {"version": "Obé".encode("utf-8")}),
            XMLEvent.end("xtab"),
        ])

        assert document.version == "Obé"

    def test_undecodable_attribute_raises(self) -> None:
        """Test that invalid attribute bytes fail the parse."""
        events = [
            XMLEvent.start("xtab"),
            XMLEvent.start("table", {"name": b"\xff\xfe"}),
        ]

        with pytest.raises(StructuralError, match="Attribute 'name' of <table>"):
            XtabMLBuilder().build(events)

    def test_unlisted_attributes_ignored(self) -> None:
        """Test that only known attributes are read."""
        document = XtabMLBuilder().build([
            XMLEvent.start("xtab", {"version": "1", "bogus": b"\xff"}),
            XMLEvent.end("xtab"),
        ])

        assert document.version == "1"


class TestLimitsAndState:
    """Test resource limits, event-level transitions and builder state."""

    def test_depth_limit(self) -> None:
        """Test that nesting beyond max_depth is rejected."""
        config = ParserConfig(limits=LimitsConfig(max_depth=3))

        with pytest.raises(StructuralError, match="Maximum nesting depth of 3"):
            build("<xtab><table><edge><group/></edge></table></xtab>", config)

    def test_depth_limit_inside_control(self) -> None:
        """Test that control bodies count toward the depth limit."""
        config = ParserConfig(limits=LimitsConfig(max_depth=3))

        with pytest.raises(StructuralError, match="Maximum nesting depth"):
            build("<xtab><control><t><t/></t></control></xtab>", config)

    def test_element_limit(self) -> None:
        """Test that the element count is bounded."""
        config = ParserConfig(limits=LimitsConfig(max_elements=3))

        with pytest.raises(StructuralError, match="Element limit of 3 exceeded"):
            build("<xtab><date/><time/><user/></xtab>", config)

    def test_element_limit_counts_control_body(self) -> None:
        """Test that elements inside control bodies are counted."""
        config = ParserConfig(limits=LimitsConfig(max_elements=3))

        with pytest.raises(StructuralError, match="Element limit"):
            build("<xtab><control><t/><t/></control></xtab>", config)

    def test_end_of_input_with_open_elements(self) -> None:
        """Test that a truncated event stream is rejected."""
        with pytest.raises(StructuralError, match="End of input inside <table>"):
            XtabMLBuilder().build([XMLEvent.start("xtab"), XMLEvent.start("table")])

    def test_mismatched_end_event(self) -> None:
        """Test that END events must match the innermost open element."""
        with pytest.raises(StructuralError, match="while <table> is open"):
            XtabMLBuilder().build([
                XMLEvent.start("xtab"), XMLEvent.start("table"), XMLEvent.end("xtab"),
            ])

    def test_text_routed_by_focus(self) -> None:
        """Test individual transitions against an explicit context."""
        builder = XtabMLBuilder()
        context = builder.new_context()

        for event in [
            XMLEvent.start("xtab"),
            XMLEvent.start("table", {"name": "t"}),
            XMLEvent.start("edge", {"axis": "r"}),
            XMLEvent.start("group"),
            XMLEvent.start("element"),
        ]:
            builder.handle_event(context, event)

        assert context.focus is Focus.ELEMENT_LABEL
        assert context.stack.names == ("xtab", "table", "edge", "group", "element")

        for event in [
            XMLEvent.start("t"),
            XMLEvent.characters("Label"),
            XMLEvent.end("t"),
            XMLEvent.end("element"),
        ]:
            builder.handle_event(context, event)

        assert context.focus is Focus.TABLE_TITLE
        assert context.group.elements[0].text == "Label"
        assert not context.has_text

    def test_builder_refuses_reentrant_build(self) -> None:
        """Test that a build cannot start while another is in flight."""
        builder = XtabMLBuilder()

        def events() -> Iterator[XMLEvent]:
            yield XMLEvent.start("xtab")
            builder.build([])
            yield XMLEvent.end("xtab")

        with pytest.raises(RuntimeError, match="already building"):
            builder.build(events())

        # Usable again afterwards
        assert builder.build([XMLEvent.empty("xtab", {"version": "2"})]).version == "2"

    def test_builder_reusable_across_parses(self) -> None:
        """Test that sequential builds do not share state."""
        builder = XtabMLBuilder()
        source = LxmlEventSource()

        first = builder.build(source.events(['<xtab><table name="a"/></xtab>']))
        second = builder.build(source.events(["<xtab/>"]))

        assert len(first.tables) == 1
        assert second.tables == ()
