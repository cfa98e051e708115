"""Tests for the XtabML exception hierarchy and correlation logging."""

import logging

import pytest

from xtabml.shared import (
    CorrelationLogger,
    MissingElementError,
    SourceIOError,
    StructuralError,
    TokenError,
    XtabMLError,
    get_logger,
)


class TestErrors:
    """Test exception messages and attributes."""

    @pytest.mark.parametrize(
        "error",
        [
            TokenError("bad"),
            StructuralError("bad"),
            MissingElementError("xtab"),
            SourceIOError("bad"),
        ],
    )
    def test_all_errors_share_base(self, error: XtabMLError) -> None:
        """Test that every error derives from XtabMLError."""
        assert isinstance(error, XtabMLError)

    def test_token_error_position(self) -> None:
        """Test that line and column are included in the message."""
        error = TokenError("Malformed markup", line=3, column=14)

        assert error.line == 3
        assert error.column == 14
        assert str(error) == "Malformed markup (line 3, column 14)"

    def test_token_error_without_position(self) -> None:
        """Test the message when no position is known."""
        error = TokenError("Malformed markup")

        assert error.line is None
        assert str(error) == "Malformed markup"

    def test_structural_error_names_table(self) -> None:
        """Test that the offending table is carried and reported."""
        error = StructuralError("Incorrect number of rows", table="q4")

        assert error.table == "q4"
        assert str(error) == "Incorrect number of rows [table: q4]"

    def test_missing_element_default_message(self) -> None:
        """Test the default message of MissingElementError."""
        error = MissingElementError("xtab")

        assert error.element == "xtab"
        assert str(error) == "Missing required element: <xtab>"

    def test_source_io_error_path(self) -> None:
        """Test that SourceIOError keeps the path."""
        error = SourceIOError("Unable to open", path="/tmp/report.xte")

        assert error.path == "/tmp/report.xte"


class TestCorrelationLogger:
    """Test correlation-aware logging."""

    def test_component_defaults_to_module(self) -> None:
        """Test the default component name."""
        logger = get_logger("xtabml.tree.builder", "req-1")

        assert isinstance(logger, CorrelationLogger)
        assert logger.component == "builder"
        assert logger.correlation_id == "req-1"

    def test_records_carry_correlation_fields(self, caplog) -> None:
        """Test that correlation fields and call-site extras reach the record."""
        logger = get_logger("xtabml.test", "req-7", "unit")

        with caplog.at_level(logging.INFO, logger="xtabml.test"):
            logger.info("Parsed", extra={"table_count": 2})

        record = caplog.records[-1]
        assert record.correlation_id == "req-7"
        assert record.component == "unit"
        assert record.table_count == 2
