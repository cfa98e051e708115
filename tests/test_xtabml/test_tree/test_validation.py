"""Tests for table-completion validation."""

import pytest

from xtabml.shared import CellPolicy, StructuralError
from xtabml.tree import (
    DataCell,
    DataRow,
    DataRowSeries,
    Statistic,
    Table,
    TableData,
    TableValidator,
)

COUNT = Statistic("Count")
PERCENT = Statistic("Percent")


def row(*cell_counts: int) -> DataRow:
    statistics = [COUNT, PERCENT][:len(cell_counts)]
    return DataRow(series=tuple(
        DataRowSeries(statistic, tuple(DataCell("1") for _ in range(count)))
        for statistic, count in zip(statistics, cell_counts)
    ))


def table(*rows: DataRow, statistics=(COUNT, PERCENT)) -> Table:
    return Table(name="t1", statistics=statistics, data=TableData(rows))


class TestTableValidator:
    """Test row/statistic invariants."""

    def test_valid_table(self) -> None:
        """Test that a consistent table passes."""
        TableValidator().validate(table(row(2, 2), row(2, 2)))

    def test_table_without_statistics(self) -> None:
        """Test that divisibility is skipped when nothing is declared."""
        TableValidator().validate(table(DataRow(), statistics=()))

    @pytest.mark.parametrize("policy", list(CellPolicy))
    def test_rows_not_divisible(self, policy: CellPolicy) -> None:
        """Test the divisibility check under every policy."""
        with pytest.raises(StructuralError, match="Incorrect number of rows") as exc_info:
            TableValidator(policy).validate(table(row(1, 1), row(1, 1), row(1, 1)))

        assert exc_info.value.table == "t1"

    @pytest.mark.parametrize("policy", list(CellPolicy))
    def test_series_count_mismatch(self, policy: CellPolicy) -> None:
        """Test that every row needs one series per statistic."""
        with pytest.raises(StructuralError, match="Row 1 has 1 series"):
            TableValidator(policy).validate(table(row(1, 1), row(1)))

    def test_unequal_cell_counts_strict(self) -> None:
        """Test that strict validation requires equal series lengths."""
        with pytest.raises(StructuralError, match=r"unequal cell counts per statistic: \[2, 1\]"):
            TableValidator(CellPolicy.STRICT).validate(table(row(2, 1), row(2, 2)))

    def test_unequal_cell_counts_lenient(self) -> None:
        """Test that lenient validation accepts ragged series."""
        TableValidator(CellPolicy.LENIENT).validate(table(row(2, 1), row(2, 2)))
